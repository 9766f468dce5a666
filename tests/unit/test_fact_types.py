from speccheck.facts.types import Fact, FactState


def test_present_carries_value():
    fact = Fact.present("Mitigation: PTI")
    assert fact.state is FactState.PRESENT
    assert fact.is_present
    assert fact.get("default") == "Mitigation: PTI"


def test_absent_and_unavailable_are_distinct():
    absent = Fact.absent()
    missing = Fact.unavailable("No such file or directory")
    assert absent.is_absent and not absent.is_unavailable
    assert missing.is_unavailable and not missing.is_absent
    assert absent != missing


def test_get_falls_back_to_default_unless_present():
    assert Fact.absent().get(0) == 0
    assert Fact.unavailable().get(0) == 0
    # A present falsy value is still the value
    assert Fact.present(0).get(1) == 0


def test_describe():
    assert Fact.present(1).describe() == "1"
    assert Fact.absent().describe() == "<absent>"
    assert Fact.unavailable().describe() == "<unavailable>"
    assert Fact.unavailable("timeout").describe() == "<unavailable: timeout>"
