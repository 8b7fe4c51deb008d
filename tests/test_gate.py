"""
Tests for pkrkit/gate.py confirmation rules.
"""
import os
import sys
from unittest.mock import Mock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import make_resource
from pkrkit.gate import ConfirmationGate
from pkrkit.models import CleanupPlan, Provider, ResourceKind, RunConfig


def _plan():
    return CleanupPlan((
        make_resource("ami-1", "poc-nginx-image-aws-v1.0.0"),
        make_resource("snap-1", kind=ResourceKind.SNAPSHOT),
    ))


class TestConfirmationGate:

    def test_dry_run_never_approves(self, console):
        prompt = Mock(return_value=True)
        gate = ConfirmationGate(RunConfig(dry_run=True, force_confirm=True), prompt=prompt, console=console)
        assert gate.approve(Provider.AWS, _plan()) is False
        prompt.assert_not_called()

    def test_force_skips_prompt(self, console):
        prompt = Mock()
        gate = ConfirmationGate(RunConfig(force_confirm=True), prompt=prompt, console=console)
        assert gate.approve(Provider.AWS, _plan()) is True
        prompt.assert_not_called()

    def test_empty_plan_approved_without_prompt(self, console):
        prompt = Mock()
        gate = ConfirmationGate(RunConfig(), prompt=prompt, console=console)
        assert gate.approve(Provider.GCP, CleanupPlan()) is True
        prompt.assert_not_called()

    def test_prompt_yes(self, console):
        prompt = Mock(return_value=True)
        gate = ConfirmationGate(RunConfig(), prompt=prompt, console=console)
        assert gate.approve(Provider.AWS, _plan()) is True
        message = prompt.call_args[0][0]
        assert "AWS" in message
        assert "1 image(s)" in message
        assert "1 snapshot(s)" in message

    def test_prompt_no(self, console):
        gate = ConfirmationGate(RunConfig(), prompt=Mock(return_value=False), console=console)
        assert gate.approve(Provider.AWS, _plan()) is False

    def test_eof_declines(self, console):
        gate = ConfirmationGate(RunConfig(), prompt=Mock(side_effect=EOFError), console=console)
        assert gate.approve(Provider.AZURE, _plan()) is False

    def test_ctrl_c_declines(self, console):
        gate = ConfirmationGate(RunConfig(), prompt=Mock(side_effect=KeyboardInterrupt), console=console)
        assert gate.approve(Provider.AZURE, _plan()) is False
