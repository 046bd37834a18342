"""
Test suite for BIP-39 phrase generation and validation.

Covers:
  - 12 / 24 word generation, invalid strength
  - Generated phrases always validate
  - Per-word validation with precise indices
  - Checksum-only failure flags every position
  - Blank input, wrong word counts, normalisation
  - Seed stretching determinism
"""

import unittest

from coresend_core.errors import (
    ChecksumError,
    EmptyPhraseError,
    InputValidationError,
    InvalidMnemonicError,
)
from coresend_core.mnemonic import (
    MnemonicManager,
    generate,
    get_wordlist,
    is_valid_word,
    mnemonic_to_seed,
    require_valid,
    validate,
    words_from_phrase,
)
from tests.vectors import (
    ABANDON_24_PHRASE,
    ABANDON_PHRASE,
    ABANDON_WORDS,
    BAD_CHECKSUM_WORDS,
)


class TestGenerate(unittest.TestCase):

    def test_generate_12_words(self):
        self.assertEqual(len(generate(128)), 12)

    def test_generate_24_words(self):
        self.assertEqual(len(generate(256)), 24)

    def test_default_is_12_words(self):
        self.assertEqual(len(generate()), 12)

    def test_invalid_strength(self):
        with self.assertRaises(InputValidationError):
            generate(160)

    def test_generated_phrase_validates(self):
        for bits in (128, 256):
            result = validate(generate(bits))
            self.assertTrue(result.valid)
            self.assertTrue(result.checksum_ok)

    def test_generated_words_are_lowercase_wordlist_entries(self):
        for word in generate(256):
            self.assertEqual(word, word.lower())
            self.assertTrue(is_valid_word(word))

    def test_two_phrases_differ(self):
        self.assertNotEqual(generate(128), generate(128))


class TestWordlist(unittest.TestCase):

    def test_wordlist_size_and_order(self):
        words = get_wordlist()
        self.assertEqual(len(words), 2048)
        self.assertEqual(words[0], "abandon")
        self.assertEqual(words[3], "about")
        self.assertEqual(words[-1], "zoo")

    def test_is_valid_word(self):
        self.assertTrue(is_valid_word("abandon"))
        self.assertTrue(is_valid_word("  Ability "))
        self.assertFalse(is_valid_word("xyz123"))
        self.assertFalse(is_valid_word(""))


class TestValidate(unittest.TestCase):

    def test_valid_12(self):
        result = validate(ABANDON_WORDS)
        self.assertTrue(result.valid)
        self.assertTrue(result.checksum_ok)
        self.assertEqual(result.invalid_word_indices, [])

    def test_valid_24(self):
        self.assertTrue(validate(ABANDON_24_PHRASE).valid)

    def test_accepts_phrase_string_with_messy_whitespace(self):
        messy = "  " + "  ".join(ABANDON_WORDS).upper() + "\n"
        self.assertTrue(validate(messy).valid)

    def test_single_unknown_word_flagged(self):
        words = list(ABANDON_WORDS)
        words[4] = "notaword"
        result = validate(words)
        self.assertFalse(result.valid)
        self.assertEqual(result.invalid_word_indices, [4])
        self.assertFalse(result.checksum_ok)

    def test_several_unknown_words_flagged(self):
        words = list(ABANDON_WORDS)
        words[0] = "qqq"
        words[11] = "zzz"
        self.assertEqual(validate(words).invalid_word_indices, [0, 11])

    def test_blank_slot_flagged(self):
        words = list(ABANDON_WORDS)
        words[7] = "   "
        self.assertEqual(validate(words).invalid_word_indices, [7])

    def test_checksum_failure_flags_all(self):
        result = validate(BAD_CHECKSUM_WORDS)
        self.assertFalse(result.valid)
        self.assertFalse(result.checksum_ok)
        self.assertEqual(result.invalid_word_indices, list(range(12)))

    def test_wrong_word_count(self):
        result = validate(ABANDON_WORDS[:11])
        self.assertFalse(result.valid)
        self.assertEqual(result.invalid_word_indices, [])
        self.assertIsNotNone(result.error)

    def test_fifteen_words_rejected(self):
        # Valid BIP-39 in general, but only 12 and 24 are accepted here
        self.assertFalse(validate(["abandon"] * 14 + ["address"]).valid)

    def test_empty_string_raises(self):
        with self.assertRaises(EmptyPhraseError):
            validate("")

    def test_whitespace_only_raises(self):
        with self.assertRaises(EmptyPhraseError):
            validate("   \t\n ")

    def test_all_blank_list_raises(self):
        with self.assertRaises(EmptyPhraseError):
            validate([""] * 12)

    def test_to_dict(self):
        d = validate(BAD_CHECKSUM_WORDS).to_dict()
        self.assertFalse(d["valid"])
        self.assertEqual(len(d["invalid_word_indices"]), 12)


class TestRequireValid(unittest.TestCase):

    def test_returns_normalised_words(self):
        self.assertEqual(require_valid(ABANDON_PHRASE.upper()), ABANDON_WORDS)

    def test_checksum_error(self):
        with self.assertRaises(ChecksumError) as ctx:
            require_valid(BAD_CHECKSUM_WORDS)
        self.assertEqual(ctx.exception.invalid_word_indices, list(range(12)))

    def test_unknown_word_error(self):
        words = list(ABANDON_WORDS)
        words[2] = "nope"
        with self.assertRaises(InvalidMnemonicError) as ctx:
            require_valid(words)
        self.assertNotIsInstance(ctx.exception, ChecksumError)
        self.assertEqual(ctx.exception.invalid_word_indices, [2])

    def test_errors_are_value_errors(self):
        with self.assertRaises(ValueError):
            require_valid("one two three")


class TestSeed(unittest.TestCase):

    def test_known_seed(self):
        seed = mnemonic_to_seed(ABANDON_PHRASE)
        self.assertEqual(
            seed.hex(),
            "5eb00bbddcf069084889a8ab9155568165f5c453ccb85e70811aaed6f6da5fc1"
            "9a5ac40b389cd370d086206dec8aa6c43daea6690f20ad3d8d48b2d2ce9e38e4",
        )

    def test_words_and_phrase_agree(self):
        self.assertEqual(mnemonic_to_seed(ABANDON_WORDS), mnemonic_to_seed(ABANDON_PHRASE))

    def test_passphrase_changes_seed(self):
        self.assertNotEqual(
            mnemonic_to_seed(ABANDON_PHRASE, ""),
            mnemonic_to_seed(ABANDON_PHRASE, "different"),
        )


class TestHelpers(unittest.TestCase):

    def test_words_from_phrase(self):
        self.assertEqual(words_from_phrase("  Foo   BAR\tbaz "), ["foo", "bar", "baz"])

    def test_manager_facade(self):
        mgr = MnemonicManager(entropy_bits=256)
        self.assertEqual(len(mgr.generate()), 24)
        self.assertEqual(len(mgr.generate(128)), 12)
        self.assertTrue(mgr.validate(ABANDON_PHRASE).valid)

    def test_manager_rejects_bad_strength(self):
        with self.assertRaises(InputValidationError):
            MnemonicManager(entropy_bits=100)
