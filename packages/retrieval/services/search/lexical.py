"""Tokenization, lexical index construction and BM25 scoring."""

import math
import re
from collections import Counter
from typing import Dict, List

from packages.retrieval.models.domain.chunk import Chunk
from packages.retrieval.models.domain.search import LexicalIndex

BM25_K1 = 1.5
BM25_B = 0.75
HIGHLIGHT_CONTEXT_CHARS = 50
MAX_HIGHLIGHTS = 3

# Word characters and CJK (ideographs, hiragana, katakana) survive, the rest separates
_NON_TOKEN = re.compile(r"[^\w\s\u4e00-\u9fff\u3040-\u309f\u30a0-\u30ff]")


def tokenize(text: str) -> List[str]:
    return _NON_TOKEN.sub(" ", text.lower()).split()


def build_lexical_index(chunks: List[Chunk], document_id: str) -> LexicalIndex:
    doc_tokens = [tokenize(chunk.content) for chunk in chunks]
    doc_lengths = [len(tokens) for tokens in doc_tokens]
    doc_freqs: Dict[str, int] = Counter()
    for tokens in doc_tokens:
        doc_freqs.update(set(tokens))

    avg_doc_length = sum(doc_lengths) / len(doc_lengths) if doc_lengths else 0.0
    return LexicalIndex(
        document_id=document_id,
        avg_doc_length=avg_doc_length,
        doc_tokens=doc_tokens,
        doc_lengths=doc_lengths,
        chunk_ids=[chunk.id for chunk in chunks],
        doc_freqs=dict(doc_freqs),
    )


def bm25_idf(total_docs: int, doc_freq: int) -> float:
    return math.log((total_docs - doc_freq + 0.5) / (doc_freq + 0.5) + 1)


def bm25_score(query_terms: List[str], index: LexicalIndex, doc_position: int) -> float:
    """Okapi BM25 of one indexed chunk for the query terms."""
    term_counts = Counter(index.doc_tokens[doc_position])
    doc_length = index.doc_lengths[doc_position]
    # Guard against an index made only of empty chunks
    avg_length = index.avg_doc_length or 1.0

    score = 0.0
    for term in query_terms:
        tf = term_counts.get(term, 0)
        if tf == 0:
            continue
        idf = bm25_idf(index.size, index.doc_freqs.get(term, 0))
        norm = BM25_K1 * (1 - BM25_B + BM25_B * doc_length / avg_length)
        score += idf * (tf * (BM25_K1 + 1)) / (tf + norm)
    return score


def find_highlight_snippets(content: str, query_terms: List[str]) -> List[str]:
    """Context windows around the first occurrence of each query term."""
    lowered = content.lower()
    snippets: List[str] = []

    for term in query_terms:
        if len(snippets) >= MAX_HIGHLIGHTS:
            break
        position = lowered.find(term)
        if position == -1:
            continue
        start = max(0, position - HIGHLIGHT_CONTEXT_CHARS)
        end = min(len(content), position + len(term) + HIGHLIGHT_CONTEXT_CHARS)
        snippet = content[start:end]
        if start > 0:
            snippet = "..." + snippet
        if end < len(content):
            snippet = snippet + "..."
        snippets.append(snippet)

    return snippets
