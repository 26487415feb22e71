"""Factories for the action records attached to a claim.

Raw text never enters an action: before/after snapshots, prompts and model
responses are recorded only as digests.
"""

from __future__ import annotations

from textprov import __version__
from textprov.canonical import digest
from textprov.determinism import stable_timestamp
from textprov.diff import compute_word_diff
from textprov.provenance.manifest import (
    Action,
    ActionParameters,
    ActionType,
    ChangeRange,
    DigitalSourceType,
)

DEFAULT_SOFTWARE_AGENT = f"textprov/{__version__}"


def _range(change_range: ChangeRange | tuple[int, int] | None) -> ChangeRange | None:
    if change_range is None or isinstance(change_range, ChangeRange):
        return change_range
    start, end = change_range
    return ChangeRange(start=start, end=end)


def created_action(
    text: str = "",
    software_agent: str | None = DEFAULT_SOFTWARE_AGENT,
    description: str | None = "Document created",
) -> Action:
    """Record the creation of a new document."""
    return Action(
        action=ActionType.CREATED,
        when=stable_timestamp(),
        software_agent=software_agent,
        digital_source_type=DigitalSourceType.HUMAN_EDITS,
        parameters=ActionParameters(description=description, after_hash=digest(text)),
    )


def opened_action(
    text: str,
    software_agent: str | None = DEFAULT_SOFTWARE_AGENT,
    description: str | None = "Existing document opened",
) -> Action:
    """Record opening pre-existing content."""
    return Action(
        action=ActionType.OPENED,
        when=stable_timestamp(),
        software_agent=software_agent,
        parameters=ActionParameters(description=description, before_hash=digest(text)),
    )


def human_edit_action(
    before: str,
    after: str,
    change_range: ChangeRange | tuple[int, int] | None = None,
    description: str | None = None,
    software_agent: str | None = DEFAULT_SOFTWARE_AGENT,
) -> Action:
    """Record a human edit of the document.

    Args:
        before: Document text before the edit
        after: Document text after the edit
        change_range: Character range touched in the original text
        description: Free text; defaults to a word-diff summary
        software_agent: Editing tool identifier
    """
    if description is None:
        description = compute_word_diff(before, after).summary()
    return Action(
        action=ActionType.EDITED,
        when=stable_timestamp(),
        software_agent=software_agent,
        digital_source_type=DigitalSourceType.HUMAN_EDITS,
        parameters=ActionParameters(
            description=description,
            before_hash=digest(before),
            after_hash=digest(after),
            change_range=_range(change_range),
        ),
    )


def ai_edit_action(
    before: str,
    after: str,
    model: str,
    prompt: str,
    response: str,
    change_range: ChangeRange | tuple[int, int] | None = None,
    description: str | None = None,
    software_agent: str | None = DEFAULT_SOFTWARE_AGENT,
) -> Action:
    """Record an accepted machine-assisted edit.

    The instruction and the generated response are supplied by the caller
    after generation; only their digests are recorded.
    """
    if not model:
        raise ValueError("AI edits must name the model that produced them")
    if description is None:
        description = "AI-assisted edit: " + compute_word_diff(before, after).summary()
    return Action(
        action=ActionType.EDITED,
        when=stable_timestamp(),
        software_agent=software_agent,
        digital_source_type=DigitalSourceType.TRAINED_ALGORITHMIC_MEDIA,
        parameters=ActionParameters(
            description=description,
            ai_model=model,
            prompt_hash=digest(prompt),
            response_hash=digest(response),
            before_hash=digest(before),
            after_hash=digest(after),
            change_range=_range(change_range),
        ),
    )
