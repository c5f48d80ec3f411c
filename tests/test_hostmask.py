import unittest

from behaviors.hostmask import matches, match_any, first_match
from behaviors.roster_store import HostmaskEntry


class TestHostmaskMatching(unittest.TestCase):
    def test_host_glob_matches_any_nick_and_user(self) -> None:
        self.assertTrue(matches("alice!a@host.example.com", "*!*@*.example.com"))
        self.assertFalse(matches("alice!a@other.net", "*!*@*.example.com"))

    def test_match_is_whole_string(self) -> None:
        self.assertFalse(matches("alice!a@host.example.com.evil", "*!*@*.example.com"))
        self.assertFalse(matches("xalice!a@h", "alice!*@*"))

    def test_question_mark_is_single_character(self) -> None:
        self.assertTrue(matches("bob!b@h1.net", "bob!b@h?.net"))
        self.assertFalse(matches("bob!b@h12.net", "bob!b@h?.net"))

    def test_case_insensitive(self) -> None:
        self.assertTrue(matches("Alice!A@HOST.example.COM", "alice!a@host.example.com"))

    def test_brackets_and_regex_characters_are_literal(self) -> None:
        self.assertTrue(matches("[w]ill!w@h.net", "[w]ill!*@*"))
        self.assertFalse(matches("will!w@h.net", "[w]ill!*@*"))
        self.assertFalse(matches("bobby!b@hXnet", "bobby!b@h.net"))
        self.assertTrue(matches("a+b!c@d", "a+b!*@*"))

    def test_non_string_input_never_matches(self) -> None:
        self.assertFalse(matches(None, "*"))
        self.assertFalse(matches("a!b@c", None))

    def test_match_any_and_first_match(self) -> None:
        self.assertFalse(match_any("a!b@c", []))
        self.assertTrue(match_any("a!b@c", ["x!*@*", "*!*@c"]))
        entries = [HostmaskEntry("*!*@c", "v", True), HostmaskEntry("a!*@*", "o", True)]
        self.assertEqual(first_match("a!b@c", entries).mode, "v")
        self.assertIsNone(first_match("a!b@d", entries[:1]))


if __name__ == "__main__":
    unittest.main()
