"""Tests for the live wizard registry."""

from casewizard.services.wizard_registry import WizardRegistry
from casewizard.services.wizard_service import WizardStateMachine


def _wizard(gateway) -> WizardStateMachine:
    return WizardStateMachine(gateway, auto_fill_enabled=False)


def test_add_and_get(gateway):
    registry = WizardRegistry(idle_ttl_seconds=60, max_entries=5)
    wizard = _wizard(gateway)

    registry.add(wizard)

    assert registry.get(wizard.session_id) is wizard
    assert wizard.session_id in registry


def test_least_recently_used_is_evicted(gateway):
    registry = WizardRegistry(idle_ttl_seconds=60, max_entries=2)
    first, second, third = _wizard(gateway), _wizard(gateway), _wizard(gateway)
    registry.add(first)
    registry.add(second)
    registry.get(first.session_id)

    registry.add(third)

    assert len(registry) == 2
    assert second.session_id not in registry
    assert registry.get(first.session_id) is first


def test_idle_wizards_expire(gateway):
    registry = WizardRegistry(idle_ttl_seconds=-1, max_entries=5)
    wizard = _wizard(gateway)
    registry.add(wizard)

    assert registry.get(wizard.session_id) is None
    assert len(registry) == 0


def test_discard(gateway):
    registry = WizardRegistry(idle_ttl_seconds=60, max_entries=5)
    wizard = _wizard(gateway)
    registry.add(wizard)

    assert registry.discard(wizard.session_id) is True
    assert registry.discard(wizard.session_id) is False
    assert registry.get(wizard.session_id) is None
