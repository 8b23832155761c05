"""Content fingerprints used as result cache keys."""

from __future__ import annotations

import hashlib


PROMPT_PREFIX_CHARS = 200


def content_digest(content: bytes | str) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def make_fingerprint(content: bytes | str, prompt: str, kind: str) -> str:
    """Return ``sha256(content)_md5(prompt[:200])_kind``.

    Only the first 200 prompt characters take part, so prompts that differ
    after that prefix share cached results.
    """
    prompt_digest = hashlib.md5(prompt[:PROMPT_PREFIX_CHARS].encode("utf-8")).hexdigest()
    return f"{content_digest(content)}_{prompt_digest}_{kind}"
