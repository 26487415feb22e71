"""Edit session that produces one signed manifest per accepted edit.

Each accepted edit appends its action to the running history and yields a
fresh manifest over the new text. Earlier manifests are kept in
``history`` untouched; the newest one supersedes them.
"""

from __future__ import annotations

import logging

from textprov.provenance.actions import ai_edit_action, created_action, human_edit_action, opened_action
from textprov.provenance.builder import ManifestBuilder
from textprov.provenance.manifest import Action, ChangeRange, ExternalManifest
from textprov.provenance.signing import KeyPair
from textprov.provenance.transparency import TransparencyService

logger = logging.getLogger(__name__)


class ProvenanceRecorder:
    """Tracks document text, recorded actions and the manifests they produced."""

    def __init__(
        self,
        key_pair: KeyPair,
        builder: ManifestBuilder | None = None,
        transparency: TransparencyService | None = None,
    ) -> None:
        self.key_pair = key_pair
        self.builder = builder or ManifestBuilder()
        self.transparency = transparency
        self._text = ""
        self._actions: list[Action] = []
        self._history: list[ExternalManifest] = []

    @property
    def text(self) -> str:
        return self._text

    @property
    def actions(self) -> tuple[Action, ...]:
        return tuple(self._actions)

    @property
    def history(self) -> tuple[ExternalManifest, ...]:
        return tuple(self._history)

    @property
    def current_manifest(self) -> ExternalManifest | None:
        return self._history[-1] if self._history else None

    def create(self, text: str = "") -> ExternalManifest:
        """Start a new document."""
        self._reset()
        return self._commit(text, created_action(text))

    def open(self, text: str) -> ExternalManifest:
        """Start recording on existing content."""
        self._reset()
        return self._commit(text, opened_action(text))

    def accept_human_edit(
        self,
        new_text: str,
        change_range: ChangeRange | tuple[int, int] | None = None,
        description: str | None = None,
    ) -> ExternalManifest:
        """Record a human edit and sign the resulting text."""
        action = human_edit_action(self._text, new_text, change_range, description=description)
        return self._commit(new_text, action)

    def accept_ai_edit(
        self,
        new_text: str,
        model: str,
        prompt: str,
        response: str,
        change_range: ChangeRange | tuple[int, int] | None = None,
    ) -> ExternalManifest:
        """Record an accepted machine-assisted edit and sign the resulting text."""
        action = ai_edit_action(self._text, new_text, model, prompt, response, change_range)
        return self._commit(new_text, action)

    def accept_edit(self, new_text: str, action: Action) -> ExternalManifest:
        """Record a caller-built action and sign the resulting text."""
        return self._commit(new_text, action)

    def _reset(self) -> None:
        self._text = ""
        self._actions = []
        self._history = []

    def _commit(self, new_text: str, action: Action) -> ExternalManifest:
        # Build first so a signing failure leaves the session unchanged.
        actions = [*self._actions, action]
        manifest = self.builder.create_manifest(new_text, actions, self.key_pair)
        if self.transparency is not None:
            manifest = self.transparency.anchor(manifest)

        self._text = new_text
        self._actions = actions
        self._history.append(manifest)
        logger.debug("Recorded %s; history now has %d manifests", action.action, len(self._history))
        return manifest
