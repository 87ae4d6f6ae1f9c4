import pytest

from prod_automation.validation import ReleaseConstraint, ReleaseOp, SystemValidation, ValidationParseError


def test_parse_id_only():
    parsed = SystemValidation.parse("Debian")
    assert parsed.id_name == "Debian"
    assert parsed.release == ReleaseConstraint()
    assert parsed.needs_checking()


@pytest.mark.parametrize(
    "text, op",
    [
        ("12", ReleaseOp.EQUAL),
        ("=12", ReleaseOp.EQUAL),
        ("<12", ReleaseOp.LESS_THAN),
        ("<=12", ReleaseOp.LESS_THAN_OR_EQUAL),
        (">12", ReleaseOp.GREATER_THAN),
        (">=12", ReleaseOp.GREATER_THAN_OR_EQUAL),
    ],
)
def test_parse_release_only(text, op):
    parsed = SystemValidation.parse(text)
    assert parsed.id_name is None
    assert parsed.release == ReleaseConstraint(op, "12")


def test_parse_pair_in_either_order():
    first = SystemValidation.parse("(>=12,Debian)")
    second = SystemValidation.parse("(Debian, >=12)")

    assert first == second
    assert first.id_name == "Debian"
    assert first.release == ReleaseConstraint(ReleaseOp.GREATER_THAN_OR_EQUAL, "12")


@pytest.mark.parametrize("text", ["", "(", "()", "(egeg", "?12", ">=", "(>=,Debian)"])
def test_parse_errors(text):
    with pytest.raises(ValidationParseError):
        SystemValidation.parse(text)


def test_less_than_comparisons():
    less = ReleaseConstraint(ReleaseOp.LESS_THAN, "12")
    assert less.is_version_okay("11")
    assert not less.is_version_okay("12")

    less_equal = ReleaseConstraint(ReleaseOp.LESS_THAN_OR_EQUAL, "12")
    assert less_equal.is_version_okay("11")
    assert less_equal.is_version_okay("12")
    assert not less_equal.is_version_okay("13")


def test_dotted_versions_never_validate():
    assert not ReleaseConstraint(ReleaseOp.EQUAL, "20.04").is_version_okay("20.04")
    assert not ReleaseConstraint(ReleaseOp.GREATER_THAN, "11").is_version_okay("12.1")


def test_unset_constraint_accepts_anything():
    assert ReleaseConstraint().is_version_okay("whatever")
    assert not SystemValidation().needs_checking()


def test_check_actual_values_ignores_id_case():
    validation = SystemValidation.parse("(debian,>=12)")
    assert validation.check_actual_distro_values("Debian", "12\n")
    assert not validation.check_actual_distro_values("Fedora", "40")
    assert not validation.check_actual_distro_values("Debian", "11")
