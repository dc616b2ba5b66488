"""
SimHash fingerprints for quiz items.

Every item is reduced to a 64-bit signature over its word unigrams and bigrams.
Texts that share most of their shingles end up with signatures a few bits apart.
The top byte of the signature is the item's bucket, which lets duplicate lookups
scan one small slice of a category instead of all of it.
"""
import hashlib
from typing import Iterable, List, Optional

EMPTY_SIGNATURE = "0" * 16
_BITS = 64

def _tokens(text: str) -> List[str]:
    text = text.lower().replace("\r", " ").replace("\n", " ").replace("\t", " ").strip()
    return [w for w in text.split(" ") if w]

def _shingles(words: List[str]) -> List[str]:
    pairs = [f"{words[i]} {words[i + 1]}" for i in range(len(words) - 1)]
    return pairs + words

def _hash64(shingle: str) -> int:
    return int.from_bytes(hashlib.sha256(shingle.encode("utf-8")).digest()[:8], "little")

def compute_simhash(text: Optional[str]) -> str:
    if not text: return EMPTY_SIGNATURE
    words = _tokens(text)
    if not words: return EMPTY_SIGNATURE
    counters = [0] * _BITS
    for shingle in _shingles(words):
        h = _hash64(shingle)
        for bit in range(_BITS):
            counters[bit] += 1 if (h >> bit) & 1 else -1
    value = 0
    for bit, c in enumerate(counters):
        if c > 0: value |= 1 << bit
    return f"{value:016X}"

def compute_fuzzy_bucket(signature: Optional[str]) -> int:
    if not signature or len(signature) < 2: return 0
    return int(signature[:2], 16)

def hamming_distance(a: str, b: str) -> int:
    return bin(int(a, 16) ^ int(b, 16)).count("1")

def item_fingerprint_text(question: str, correct_answer: str, incorrect_answers: Iterable[str]) -> str:
    return f"{question} {correct_answer} {' '.join(incorrect_answers)}"

def fingerprint_item(question: str, correct_answer: str, incorrect_answers: Iterable[str]) -> tuple[str, int]:
    """Return ``(signature, bucket)`` for an item's question and answers."""
    signature = compute_simhash(item_fingerprint_text(question, correct_answer, incorrect_answers))
    return signature, compute_fuzzy_bucket(signature)
