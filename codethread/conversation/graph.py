from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from codethread.code.store import CodeBlockStore
from codethread.config import EngineSettings
from codethread.conversation.intent import IntentAnalysis, analyze_intent
from codethread.conversation.models import (
    Branch,
    EditAction,
    Relation,
    RelationType,
    Turn,
    TurnMetadata,
    TurnPrompt,
    TurnResponse,
)
from codethread.conversation.response import parse_response
from codethread.errors import NotFoundError, ValidationError
from codethread.utils.ids import generate_id, now
from codethread.utils.text import truncate_text


_REVISION_ACTIONS = frozenset({EditAction.REGENERATE, EditAction.REFACTOR, EditAction.CONVERT})


class ConversationGraph:
    """会话图：拥有全部 Turn、Branch 与 Relation。

    代码块只以引用形式挂在 Turn 上，内容归 :class:`CodeBlockStore` 管理。
    构造时会创建一个默认分支并激活，保证任何时刻恰好有一个活动分支。
    """

    def __init__(self, code_store: CodeBlockStore, *, settings: Optional[EngineSettings] = None) -> None:
        self._code_store = code_store
        self._settings = settings or EngineSettings()
        self._turns: dict[str, Turn] = {}
        self._children: dict[str, list[str]] = {}
        self._relations: list[Relation] = []
        self._branches: dict[str, Branch] = {}
        self._active_branch_id = self._new_branch(self._settings.default_branch_name, active=True).id

    @property
    def code_store(self) -> CodeBlockStore:
        return self._code_store

    # ------------------------------------------------------------------
    # turns
    # ------------------------------------------------------------------
    def add_turn(
        self,
        prompt: TurnPrompt | str,
        response: TurnResponse | str,
        provider: str,
        model: str,
        edit_action: Optional[EditAction | str] = None,
        edit_target: Optional[str] = None,
        parent_turn_id: Optional[str] = None,
        *,
        metadata: Optional[TurnMetadata | Mapping[str, Any]] = None,
        relation_type: Optional[RelationType | str] = None,
        detached: bool = False,
    ) -> Turn:
        """Record one exchange and merge its code into the block store.

        Without ``parent_turn_id`` the turn continues the active branch from its
        tip; ``detached=True`` starts a new root instead.
        """
        prompt_model = _coerce_prompt(prompt)
        response_model = _coerce_response(response, provider, model)
        action = _coerce_action(edit_action)

        if parent_turn_id is not None:
            parent: Optional[Turn] = self.require_turn(parent_turn_id)
        elif detached:
            parent = None
        else:
            parent = self.get_active_branch().tip

        relation = _coerce_relation(relation_type) if relation_type is not None else None
        try:
            turn = Turn(
                id=generate_id("turn"),
                created_at=now(),
                prompt=prompt_model,
                response=response_model,
                edit_action=action,
                edit_target=edit_target,
                provider=provider,
                model=model,
                parent_turn_id=parent.id if parent is not None else None,
                metadata=_coerce_metadata(metadata),
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid turn: {exc}") from exc

        inherited = parent.code_block_refs if parent is not None else []
        refs = self._code_store.extract_from_response(
            response_model.code_blocks,
            turn.id,
            inherited,
            target_language=edit_target,
        )
        turn.code_block_refs = refs

        if parent is not None:
            siblings = self._children.setdefault(parent.id, [])
            derived = _derive_relation(action, had_child=bool(siblings))
            siblings.append(turn.id)
            self._relations.append(
                Relation(
                    source_id=parent.id,
                    target_id=turn.id,
                    type=relation if relation is not None else derived,
                    created_at=turn.created_at,
                )
            )
        self._turns[turn.id] = turn

        branch = self.get_active_branch()
        tip_id = branch.tip.id if branch.tip is not None else None
        if tip_id == turn.parent_turn_id:
            branch.turns.append(turn)
            if branch.root_turn_id is None:
                branch.root_turn_id = turn.id

        logger.debug(
            f"Added turn {turn.id} (parent={turn.parent_turn_id}, refs={len(refs)}): "
            f"{truncate_text(prompt_model.content, 80)}"
        )
        return turn

    def get_turn(self, turn_id: str) -> Optional[Turn]:
        return self._turns.get(turn_id)

    def require_turn(self, turn_id: str) -> Turn:
        turn = self._turns.get(turn_id)
        if turn is None:
            raise NotFoundError("turn", turn_id)
        return turn

    def turns(self) -> list[Turn]:
        return list(self._turns.values())

    def get_children(self, turn_id: str) -> list[Turn]:
        self.require_turn(turn_id)
        return [self._turns[child_id] for child_id in self._children.get(turn_id, [])]

    def get_descendants(self, turn_id: str) -> list[Turn]:
        """All turns whose parent chain passes through ``turn_id``, in creation order."""
        self.require_turn(turn_id)
        found: set[str] = set()
        pending = list(self._children.get(turn_id, []))
        while pending:
            child_id = pending.pop()
            if child_id in found:
                continue
            found.add(child_id)
            pending.extend(self._children.get(child_id, []))
        return [turn for turn in self._turns.values() if turn.id in found]

    def get_lineage(self, turn_id: str, limit: Optional[int] = None) -> list[Turn]:
        """Path from the root down to ``turn_id``; ``limit`` keeps the most recent turns."""
        chain: list[Turn] = []
        current: Optional[Turn] = self.require_turn(turn_id)
        while current is not None:
            if limit is not None and len(chain) >= limit:
                break
            chain.append(current)
            current = self._turns.get(current.parent_turn_id) if current.parent_turn_id else None
        chain.reverse()
        return chain

    def attach_memory(self, turn_id: str, memory_id: str) -> None:
        turn = self.require_turn(turn_id)
        if memory_id not in turn.memory_ids:
            turn.memory_ids.append(memory_id)

    # ------------------------------------------------------------------
    # relations
    # ------------------------------------------------------------------
    def record_relation(
        self,
        source_id: str,
        target_id: str,
        relation_type: RelationType | str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Relation:
        self.require_turn(source_id)
        self.require_turn(target_id)
        relation = Relation(
            source_id=source_id,
            target_id=target_id,
            type=_coerce_relation(relation_type),
            created_at=now(),
            metadata=dict(metadata or {}),
        )
        self._relations.append(relation)
        logger.debug(f"Recorded {relation.type.value} relation {source_id} -> {target_id}")
        return relation

    def get_relations(self, turn_id: Optional[str] = None) -> list[Relation]:
        if turn_id is None:
            return list(self._relations)
        return [
            relation
            for relation in self._relations
            if relation.source_id == turn_id or relation.target_id == turn_id
        ]

    # ------------------------------------------------------------------
    # branches
    # ------------------------------------------------------------------
    def create_branch(
        self,
        turn_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        path = self.get_lineage(turn_id)
        created_at = now()
        branch = self._new_branch(
            name or f"Branch from {datetime.fromtimestamp(created_at):%Y-%m-%d %H:%M:%S}",
            description=description,
            root_turn_id=turn_id,
            turns=path,
            created_at=created_at,
        )
        logger.debug(f"Created branch {branch.id} at turn {turn_id} ({len(path)} turns)")
        return branch.id

    def set_active_branch(self, branch_id: str) -> bool:
        target = self._branches.get(branch_id)
        if target is None:
            return False
        current = self._branches.get(self._active_branch_id)
        if current is not None:
            current.active = False
        target.active = True
        self._active_branch_id = branch_id
        logger.debug(f"Active branch is now {branch_id} ({target.name})")
        return True

    def get_active_branch(self) -> Branch:
        return self._branches[self._active_branch_id]

    def get_branch(self, branch_id: str) -> Optional[Branch]:
        return self._branches.get(branch_id)

    def get_branch_turns(self, branch_id: str) -> list[Turn]:
        branch = self._branches.get(branch_id)
        if branch is None:
            raise NotFoundError("branch", branch_id)
        return list(branch.turns)

    def get_all_branches(self) -> list[Branch]:
        return list(self._branches.values())

    def delete_branch(self, branch_id: str) -> bool:
        branch = self._branches.get(branch_id)
        if branch is None:
            return False
        if len(self._branches) == 1:
            raise ValidationError("Cannot delete the only remaining branch")

        del self._branches[branch_id]
        if branch.active:
            replacement = max(self._branches.values(), key=lambda item: item.created_at)
            self.set_active_branch(replacement.id)
        logger.debug(f"Deleted branch {branch_id}")
        return True

    # ------------------------------------------------------------------
    # intent
    # ------------------------------------------------------------------
    @staticmethod
    def analyze_intent(prompt: Any) -> IntentAnalysis:
        return analyze_intent(prompt)

    def _new_branch(
        self,
        name: str,
        *,
        description: Optional[str] = None,
        root_turn_id: Optional[str] = None,
        turns: Optional[list[Turn]] = None,
        created_at: Optional[float] = None,
        active: bool = False,
    ) -> Branch:
        branch = Branch(
            id=generate_id("branch"),
            name=name,
            description=description,
            root_turn_id=root_turn_id,
            created_at=created_at if created_at is not None else now(),
            active=active,
        )
        branch.turns = list(turns or [])
        self._branches[branch.id] = branch
        return branch


def _derive_relation(action: Optional[EditAction], *, had_child: bool) -> RelationType:
    if had_child:
        return RelationType.BRANCH
    if action is EditAction.EXPLAIN:
        return RelationType.REFERENCE
    if action in _REVISION_ACTIONS:
        return RelationType.REVISION
    return RelationType.SEQUENTIAL


def _coerce_prompt(prompt: TurnPrompt | str) -> TurnPrompt:
    if isinstance(prompt, TurnPrompt):
        return prompt
    if isinstance(prompt, str):
        return TurnPrompt(content=prompt)
    raise ValidationError(f"Unsupported prompt type: {type(prompt).__name__}")


def _coerce_response(response: TurnResponse | str, provider: str, model: str) -> TurnResponse:
    if isinstance(response, TurnResponse):
        return response
    if isinstance(response, str):
        return parse_response(response, provider=provider, model=model)
    raise ValidationError(f"Unsupported response type: {type(response).__name__}")


def _coerce_action(action: Optional[EditAction | str]) -> Optional[EditAction]:
    if action is None or isinstance(action, EditAction):
        return action
    try:
        return EditAction(str(action).lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown edit action: {action}") from exc


def _coerce_relation(relation_type: RelationType | str) -> RelationType:
    if isinstance(relation_type, RelationType):
        return relation_type
    try:
        return RelationType(str(relation_type).lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown relation type: {relation_type}") from exc


def _coerce_metadata(metadata: Optional[TurnMetadata | Mapping[str, Any]]) -> TurnMetadata:
    if metadata is None:
        return TurnMetadata()
    if isinstance(metadata, TurnMetadata):
        return metadata.model_copy(deep=True)
    return TurnMetadata.model_validate(dict(metadata))
