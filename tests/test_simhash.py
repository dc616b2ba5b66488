import pytest

from quizvault.services.simhash import (EMPTY_SIGNATURE, compute_fuzzy_bucket, compute_simhash, fingerprint_item,
                                        hamming_distance, item_fingerprint_text)


def test_hash_is_sixteen_uppercase_hex_chars():
    h = compute_simhash("What is the capital of France? Paris Lyon Marseille")
    assert len(h) == 16
    assert h == h.upper()
    int(h, 16)


@pytest.mark.parametrize("text", ["", None, "   ", "\r\n\t"])
def test_empty_input_gives_zero_signature(text):
    assert compute_simhash(text) == EMPTY_SIGNATURE == "0000000000000000"


def test_hash_is_deterministic():
    text = "Which planet is known as the red planet? Mars"
    assert compute_simhash(text) == compute_simhash(text)


def test_hash_ignores_case():
    upper = compute_simhash("What is the capital of France? Paris Lyon Marseille")
    lower = compute_simhash("what is the capital of france? paris lyon marseille")
    assert upper == lower


def test_line_breaks_tabs_and_extra_spaces_are_plain_separators():
    a = compute_simhash("capital of France\r\nParis\tLyon")
    b = compute_simhash("capital  of France Paris Lyon")
    assert a == b


def test_single_word_hash_is_its_own_sha256_prefix():
    import hashlib
    digest = hashlib.sha256("paris".encode("utf-8")).digest()[:8]
    assert compute_simhash("Paris") == f"{int.from_bytes(digest, 'little'):016X}"


def test_similar_texts_are_closer_than_unrelated_ones():
    base = compute_simhash("What is the capital of France? Paris Lyon Marseille Nice Toulouse Bordeaux")
    near = compute_simhash("What is the capital city of France? Paris Lyon Marseille Nice Toulouse Bordeaux")
    far = compute_simhash("Who painted the Mona Lisa? Leonardo da Vinci Michelangelo Raphael Donatello")
    assert hamming_distance(base, near) < hamming_distance(base, far)


def test_bucket_reads_first_byte():
    assert compute_fuzzy_bucket("ABCD1234567890EF") == 0xAB == 171
    assert compute_fuzzy_bucket("00FFFFFFFFFFFFFF") == 0
    assert compute_fuzzy_bucket("FF00000000000000") == 255


@pytest.mark.parametrize("sig", ["", None, "A"])
def test_bucket_of_short_input_is_zero(sig):
    assert compute_fuzzy_bucket(sig) == 0


def test_hamming_distance():
    assert hamming_distance("0000000000000000", "0000000000000000") == 0
    assert hamming_distance("0000000000000000", "000000000000000F") == 4
    assert hamming_distance("FFFFFFFFFFFFFFFF", "0000000000000000") == 64


def test_fingerprint_text_joins_question_and_answers():
    assert item_fingerprint_text("Q?", "A", ["B", "C"]) == "Q? A B C"
    assert item_fingerprint_text("Q?", "A", []) == "Q? A "


def test_fingerprint_item_bucket_matches_signature():
    sig, bucket = fingerprint_item("2 + 2?", "4", ["3", "5"])
    assert bucket == int(sig[:2], 16)
    assert sig == compute_simhash("2 + 2? 4 3 5")
