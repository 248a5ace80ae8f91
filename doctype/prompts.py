"""Prompt templates and generation constants.

Static data only: the documentation-writer prompts and the knobs that
shape a request. No runtime logic beyond string formatting helpers.
"""

# ---------------------------------------------------------------------------
# Generation Constants
# ---------------------------------------------------------------------------

# Upper bound for one anchor body. Anchored sections document a single
# symbol, so a few hundred words is plenty.
MAX_OUTPUT_TOKENS: int = 1_024

# Low temperature keeps regenerated prose close to the previous wording.
TEMPERATURE: float = 0.2

# The existing section is sent back to the model so it can preserve tone
# and examples. Longer sections are truncated to this many characters.
OLD_DOC_TRUNCATION: int = 4_000


# ---------------------------------------------------------------------------
# Writer Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT: str = """You are a technical writer keeping API documentation in sync with source code.

You update the documentation for ONE code symbol after its signature changed.

OUTPUT RULES (ABSOLUTELY MANDATORY):
  - Return ONLY the markdown body for this symbol. No preamble, no sign-off.
  - Do NOT use markdown headings (#, ##, ...). Use **bold** for sub-titles.
  - Do NOT emit HTML comments. The surrounding document uses them as markers.
  - Do NOT wrap the whole answer in a code fence.
  - Keep what is still accurate in the existing text; change what the new
    signature invalidates; describe new parameters and return values.
  - Prefer short prose paragraphs. A small usage example in a fenced code
    block is welcome when the signature is not self-explanatory.
"""

UPDATE_PROMPT: str = """Symbol: `{symbol_name}`{location}

Previous signature:
```
{old_signature}
```

Current signature:
```
{new_signature}
```

Existing documentation:
{old_doc}

Rewrite the documentation so it matches the current signature."""

INITIAL_PROMPT: str = """Symbol: `{symbol_name}`{location}

Signature:
```
{new_signature}
```

This symbol has no documentation yet. Write a concise description of what
it does, its parameters, and its return value."""

PLACEHOLDER_TEMPLATE: str = """**{symbol_name}** - Documentation needs update

Current signature:
```python
{signature}
```

*This content is a placeholder. Run `doctype fix` with a configured writer model to generate full documentation.*
"""


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "\n[...truncated...]"


def build_user_prompt(
    symbol_name: str,
    new_signature: str,
    old_signature: str | None = None,
    old_doc_text: str = "",
    file_path: str | None = None,
) -> str:
    """Pick the update or initial template depending on what is known."""
    location = f" in `{file_path}`" if file_path else ""
    if old_doc_text.strip():
        return UPDATE_PROMPT.format(
            symbol_name=symbol_name,
            location=location,
            old_signature=old_signature or "(unknown)",
            new_signature=new_signature,
            old_doc=_truncate(old_doc_text.strip(), OLD_DOC_TRUNCATION),
        )
    return INITIAL_PROMPT.format(
        symbol_name=symbol_name,
        location=location,
        new_signature=new_signature,
    )
