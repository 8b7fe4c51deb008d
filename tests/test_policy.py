"""
Tests for pkrkit/policy.py match rules.

Covers:
- Prefix matching on name and Name tag
- Empty prefix matches nothing
- Builder-owned instances, security groups and key pairs
- Images and snapshots only ever match by prefix
- Emergency selection
"""
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import make_resource
from pkrkit.models import ResourceKind, RunConfig
from pkrkit.policy import (
    is_builder_owned,
    is_eligible,
    matches_prefix,
    name_matches,
    select_builder_instances,
    select_eligible,
)


class TestNameMatches:

    def test_prefix_match(self):
        assert name_matches("poc-nginx-image-aws-v1.0.0", "poc-nginx-image")

    def test_exact_match(self):
        assert name_matches("poc-nginx-image", "poc-nginx-image")

    def test_no_match(self):
        assert not name_matches("other-image", "poc-nginx-image")

    def test_match_is_case_sensitive(self):
        assert not name_matches("POC-nginx-image-aws", "poc-nginx-image")

    def test_prefix_must_be_at_start(self):
        assert not name_matches("my-poc-nginx-image", "poc-nginx-image")

    def test_empty_prefix_matches_nothing(self):
        assert not name_matches("anything", "")

    def test_none_value(self):
        assert not name_matches(None, "poc")


class TestMatchesPrefix:

    def test_name(self):
        resource = make_resource("ami-1", "poc-nginx-image-aws-v1.0.0")
        assert matches_prefix(resource, "poc-nginx-image")

    def test_name_tag(self):
        resource = make_resource("i-1", "web", ResourceKind.INSTANCE, tags={"Name": "poc-nginx-image-tmp"})
        assert matches_prefix(resource, "poc-nginx-image")

    def test_other_tags_ignored(self):
        resource = make_resource("i-1", "web", ResourceKind.INSTANCE, tags={"Project": "poc-nginx-image"})
        assert not matches_prefix(resource, "poc-nginx-image")


class TestBuilderOwned:

    def test_instance_with_builder_tag(self, run_config):
        resource = make_resource("i-1", "Packer Builder", ResourceKind.INSTANCE,
                                 tags={"Name": "Packer Builder"})
        assert is_builder_owned(resource, run_config)
        assert is_eligible(resource, run_config)

    def test_custom_builder_tag(self):
        config = RunConfig(builder_tag_key="Owner", builder_tag_value="packer")
        resource = make_resource("i-1", "x", ResourceKind.INSTANCE, tags={"Owner": "packer"})
        assert is_builder_owned(resource, config)

    def test_security_group_flagged_by_provider(self, run_config):
        resource = make_resource("sg-1", "packer_123", ResourceKind.SECURITY_GROUP, builder_owned=True)
        assert is_eligible(resource, run_config)

    def test_image_flag_ignored(self, run_config):
        resource = make_resource("ami-1", "other-image", builder_owned=True)
        assert not is_builder_owned(resource, run_config)
        assert not is_eligible(resource, run_config)

    def test_snapshot_with_builder_tag_ignored(self, run_config):
        resource = make_resource("snap-1", "other", ResourceKind.SNAPSHOT, tags={"Name": "Packer Builder"})
        assert not is_eligible(resource, run_config)


class TestSelection:

    def test_select_eligible_keeps_order(self, run_config, aws_fixture_resources):
        selected = select_eligible(aws_fixture_resources, run_config)
        assert [r.resource_id for r in selected] == ["i-builder", "ami-111", "snap-111"]

    def test_every_selected_resource_matches_or_is_builder_owned(self, run_config, aws_fixture_resources):
        for resource in select_eligible(aws_fixture_resources, run_config):
            assert matches_prefix(resource, run_config.prefix) or is_builder_owned(resource, run_config)

    def test_select_builder_instances(self, run_config, aws_fixture_resources):
        extra = make_resource("i-poc", "poc-nginx-image-tmp", ResourceKind.INSTANCE, state="running")
        selected = select_builder_instances(aws_fixture_resources + [extra], run_config)
        assert [r.resource_id for r in selected] == ["i-builder"]

    @pytest.mark.parametrize("prefix", ["poc-nginx-image", "poc"])
    def test_unrelated_image_never_selected(self, prefix, aws_fixture_resources):
        selected = select_eligible(aws_fixture_resources, RunConfig(prefix=prefix))
        assert "ami-222" not in [r.resource_id for r in selected]
