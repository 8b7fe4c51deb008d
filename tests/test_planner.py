"""
Tests for pkrkit/planner.py ordering and deduplication.
"""
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import make_resource
from pkrkit.models import CleanupPlan, Provider, ResourceKind
from pkrkit.planner import build_plan, check_ordering


class TestBuildPlan:

    def test_empty(self):
        plan = build_plan([])
        assert plan.is_empty()
        assert len(plan) == 0

    def test_snapshots_follow_images(self):
        resources = [
            make_resource("snap-1", kind=ResourceKind.SNAPSHOT, parents=["ami-1"]),
            make_resource("ami-1"),
        ]
        plan = build_plan(resources)
        assert plan.resource_ids() == ["ami-1", "snap-1"]
        assert check_ordering(plan) == []

    def test_kind_order(self):
        resources = [
            make_resource("key-1", kind=ResourceKind.KEY_PAIR),
            make_resource("sg-1", kind=ResourceKind.SECURITY_GROUP),
            make_resource("snap-1", kind=ResourceKind.SNAPSHOT),
            make_resource("ami-1"),
            make_resource("i-1", kind=ResourceKind.INSTANCE),
        ]
        plan = build_plan(resources)
        assert plan.resource_ids() == ["i-1", "ami-1", "snap-1", "sg-1", "key-1"]

    def test_provider_grouping(self):
        resources = [
            make_resource("az-img", provider=Provider.AZURE),
            make_resource("gcp-img", provider=Provider.GCP),
            make_resource("ami-1", provider=Provider.AWS),
        ]
        plan = build_plan(resources)
        assert plan.resource_ids() == ["ami-1", "gcp-img", "az-img"]

    def test_enumeration_order_kept_within_kind(self):
        resources = [make_resource(f"ami-{i}") for i in (3, 1, 2)]
        assert build_plan(resources).resource_ids() == ["ami-3", "ami-1", "ami-2"]

    def test_duplicates_planned_once(self):
        resources = [make_resource("ami-1"), make_resource("ami-1"), make_resource("snap-1", kind=ResourceKind.SNAPSHOT)]
        assert build_plan(resources).resource_ids() == ["ami-1", "snap-1"]

    def test_same_id_different_kind_kept(self):
        resources = [
            make_resource("poc-a", kind=ResourceKind.INSTANCE, provider=Provider.GCP),
            make_resource("poc-a", provider=Provider.GCP),
        ]
        assert len(build_plan(resources)) == 2

    def test_plan_is_deterministic(self, aws_fixture_resources):
        assert build_plan(aws_fixture_resources) == build_plan(list(aws_fixture_resources))


class TestCheckOrdering:

    def test_detects_misplaced_snapshot(self):
        plan = CleanupPlan((
            make_resource("snap-1", kind=ResourceKind.SNAPSHOT, parents=["ami-1"]),
            make_resource("ami-1"),
        ))
        assert check_ordering(plan) == ["snap-1"]

    def test_parent_outside_plan_ignored(self):
        plan = CleanupPlan((make_resource("snap-1", kind=ResourceKind.SNAPSHOT, parents=["ami-gone"]),))
        assert check_ordering(plan) == []


class TestPlanHelpers:

    def test_count_by_kind(self, aws_fixture_resources):
        counts = build_plan(aws_fixture_resources).count_by_kind()
        assert counts[ResourceKind.IMAGE] == 2
        assert counts[ResourceKind.SNAPSHOT] == 2
        assert counts[ResourceKind.INSTANCE] == 1

    def test_for_provider(self):
        plan = build_plan([make_resource("ami-1"), make_resource("img", provider=Provider.GCP)])
        assert plan.for_provider(Provider.GCP).resource_ids() == ["img"]
