import pytest

from ldap_oidc.directory.filters import (
    And,
    Equality,
    Not,
    Or,
    Presence,
    account_filter,
    parse_fragment,
    parse_fragments,
)


@pytest.mark.parametrize(
    "value, rendered",
    [
        ("alice", "(uid=alice)"),
        ("a*", "(uid=a\\2a)"),
        ("*)(uid=*", "(uid=\\2a\\29\\28uid=\\2a)"),
        ("back\\slash", "(uid=back\\5cslash)"),
    ],
)
def test_equality_escapes_value(value, rendered) -> None:
    assert str(Equality("uid", value)) == rendered


def test_invalid_attribute() -> None:
    with pytest.raises(ValueError):
        Equality("uid)(cn", "x")


def test_operators() -> None:
    uid = Equality("uid", "alice")
    mail = Presence("mail")

    assert str(uid & mail) == "(&(uid=alice)(mail=*))"
    assert str(uid | mail) == "(|(uid=alice)(mail=*))"
    assert str(~uid) == "(!(uid=alice))"


def test_empty_conjunction() -> None:
    with pytest.raises(ValueError):
        And(())
    with pytest.raises(ValueError):
        Or(())


@pytest.mark.parametrize(
    "fragment, expected",
    [
        ("employeeType=staff", Equality("employeeType", "staff")),
        ("(employeeType=staff)", Equality("employeeType", "staff")),
        ("mail=*", Presence("mail")),
        (["!", "employeeType=guest"], Not(Equality("employeeType", "guest"))),
        (
            ["|", "ou=a", "ou=b"],
            Or((Equality("ou", "a"), Equality("ou", "b"))),
        ),
        (["ou=a", "mail=*"], And((Equality("ou", "a"), Presence("mail")))),
    ],
)
def test_parse_fragment(fragment, expected) -> None:
    assert parse_fragment(fragment) == expected


@pytest.mark.parametrize("fragment", ["nothing", ["!"], ["!", "a=b", "c=d"], [], 12])
def test_parse_invalid_fragment(fragment) -> None:
    with pytest.raises(ValueError):
        parse_fragment(fragment)


def test_parse_fragments() -> None:
    assert parse_fragments(None) == ()
    assert parse_fragments([]) == ()
    assert parse_fragments("ou=a") == (Equality("ou", "a"),)
    assert parse_fragments(["ou=a", "mail=*"]) == (Equality("ou", "a"), Presence("mail"))
    assert parse_fragments(["|", "ou=a", "ou=b"]) == (
        Or((Equality("ou", "a"), Equality("ou", "b"))),
    )


def test_account_filter() -> None:
    search = account_filter("inetOrgPerson", "uid", "al*ce", (Presence("mail"),))

    assert str(search) == "(&(objectClass=inetOrgPerson)(uid=al\\2ace)(mail=*))"
