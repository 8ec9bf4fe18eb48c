from playerwatch.gate import GroupNotificationGate, display_names, membership_signature
from playerwatch.models import WatchedEntity


def member(key: str, group: str = "alpha", online: bool = True, resolved_id: str | None = None) -> WatchedEntity:
    return WatchedEntity(key=key, group=group, online=online, resolved_id=resolved_id)


def test_signature_is_order_independent_and_prefers_resolved_id():
    first = [member(" Bob "), member("alice", resolved_id="42")]
    second = [member("ALICE", resolved_id=" 42 "), member("bob")]
    assert membership_signature(first) == "42|bob"
    assert membership_signature(second) == "42|bob"


def test_first_cycle_only_establishes_baseline():
    gate = GroupNotificationGate()
    assert gate.evaluate([member("a", online=False)], {}) == set()
    assert gate.offline_state == {"alpha": True}


def test_single_member_going_offline_alerts_exactly_once():
    gate = GroupNotificationGate()
    player = member("a")

    assert gate.evaluate([player], {}) == set()
    player.online = False
    assert gate.evaluate([player], {}) == {"alpha"}
    assert gate.evaluate([player], {}) == set()
    assert gate.evaluate([player], {}) == set()

    player.online = True
    assert gate.evaluate([player], {}) == set()
    player.online = False
    assert gate.evaluate([player], {}) == {"alpha"}


def test_membership_change_resets_baseline_without_alert():
    gate = GroupNotificationGate()
    a = member("a")
    b = member("b")

    assert gate.evaluate([a, b], {}) == set()
    assert gate.evaluate([a], {}) == set()
    assert gate.signatures["alpha"] == "a"
    assert gate.offline_state["alpha"] is False


def test_roster_change_suppresses_an_otherwise_valid_edge():
    gate = GroupNotificationGate()
    a = member("a")
    b = member("b")
    gate.evaluate([a, b], {})

    a.online = False
    assert gate.evaluate([a], {}) == set()
    assert gate.evaluate([a], {}) == set()


def test_disabled_group_forces_baseline_false():
    gate = GroupNotificationGate()
    player = member("a", group="Alpha")

    gate.evaluate([player], {"alpha": True})
    player.online = False
    assert gate.evaluate([player], {"alpha": False}) == set()
    assert gate.offline_state["alpha"] is False

    # Re-enabling while already offline fires on the next evaluation.
    assert gate.evaluate([player], {"alpha": True}) == {"alpha"}


def test_group_keys_are_case_insensitive_and_ungrouped_never_alerts():
    gate = GroupNotificationGate()
    players = [member("a", group="Alpha"), member("b", group=" alpha "), member("c", group="")]
    gate.evaluate(players, {})
    assert set(gate.signatures) == {"alpha"}

    for player in players:
        player.online = False
    assert gate.evaluate(players, {}) == {"alpha"}


def test_missing_groups_are_forgotten():
    gate = GroupNotificationGate()
    player = member("a", group="beta")
    gate.evaluate([player], {})
    gate.evaluate([], {})
    assert gate.signatures == {}
    assert gate.offline_state == {}

    player.online = False
    assert gate.evaluate([player], {}) == set()


def test_display_names_use_member_spelling():
    players = [member("a", group=" Night Crew "), member("b", group="")]
    assert display_names(players) == {"night crew": "Night Crew"}
