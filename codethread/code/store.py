from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Optional

from loguru import logger

from codethread.code.diff import compute_diff
from codethread.code.models import CodeBlock, CodeBlockMetadata, CodeBlockRef, CodeBlockVersion
from codethread.code.naming import infer_contextual_name
from codethread.config import EngineSettings
from codethread.errors import LineageError, NotFoundError, ValidationError
from codethread.memory.interface import MemoryService
from codethread.memory.models import MemoryEntry, MemoryMetadata, MemorySearchParams, MemoryType
from codethread.utils.ids import generate_id, now


DiffFunction = Callable[[str, str], str]

_ALL_TARGET = "all"
_LOAD_LIMIT = 1000


class CodeBlockStore:
    """Owns every code block and its version lineage for one session."""

    def __init__(
        self,
        memory: Optional[MemoryService] = None,
        *,
        settings: Optional[EngineSettings] = None,
        differ: Optional[DiffFunction] = None,
    ) -> None:
        self._memory = memory
        self._settings = settings or EngineSettings()
        self._differ = differ or compute_diff
        self._blocks: dict[str, CodeBlock] = {}
        self._dirty: dict[str, None] = {}

    def create_block(
        self,
        language: str,
        code: str,
        turn_id: str,
        metadata: Optional[CodeBlockMetadata | Mapping[str, Any]] = None,
        *,
        filename: Optional[str] = None,
        purpose: Optional[str] = None,
    ) -> CodeBlock:
        """创建新代码块及其首个版本（唯一会产生无父版本的入口）。"""
        normalized = _normalize_language(language)
        if not normalized:
            raise ValidationError("Code block language must be non-empty")
        _require_content(code)
        if not turn_id:
            raise ValidationError("Originating turn id is required")

        timestamp = now()
        version = CodeBlockVersion(
            id=generate_id("version"),
            code=code,
            created_at=timestamp,
            turn_id=turn_id,
            change_summary="Initial version",
        )
        block = CodeBlock(
            id=generate_id("block"),
            language=normalized,
            filename=filename,
            purpose=purpose,
            created_at=timestamp,
            versions=[version],
            current_version_id=version.id,
            turn_ids=[turn_id],
            metadata=_coerce_metadata(metadata),
        )
        self._blocks[block.id] = block
        self._mark_dirty(block.id)
        logger.debug(f"Created {normalized} code block {block.id} from turn {turn_id}")
        return block

    def get_block(self, block_id: str) -> Optional[CodeBlock]:
        return self._blocks.get(block_id)

    def require_block(self, block_id: str) -> CodeBlock:
        block = self._blocks.get(block_id)
        if block is None:
            raise NotFoundError("code block", block_id)
        return block

    def all_blocks(self) -> list[CodeBlock]:
        return list(self._blocks.values())

    def add_version(
        self,
        block_id: str,
        code: str,
        turn_id: str,
        change_summary: Optional[str] = None,
    ) -> CodeBlockVersion:
        block = self.require_block(block_id)
        _require_content(code)
        if not turn_id:
            raise ValidationError("Originating turn id is required")

        parent = block.current_version
        version = CodeBlockVersion(
            id=generate_id("version"),
            code=code,
            created_at=now(),
            turn_id=turn_id,
            parent_version_id=parent.id,
            change_summary=change_summary or "Updated version",
            diff_from_parent=self._diff(parent.code, code),
        )

        block.versions.append(version)
        block.current_version_id = version.id
        if turn_id not in block.turn_ids:
            block.turn_ids.append(turn_id)
        self._mark_dirty(block.id)
        logger.debug(f"Added version {version.id} to block {block.id} ({len(block.versions)} versions)")
        return version

    def get_version(self, block_id: str, version_id: str) -> Optional[CodeBlockVersion]:
        block = self._blocks.get(block_id)
        if block is None:
            return None
        return block.get_version(version_id)

    def get_version_history(self, block_id: str) -> list[CodeBlockVersion]:
        block = self.require_block(block_id)
        return sorted(block.versions, key=lambda version: version.created_at)

    def get_lineage(self, block_id: str, version_id: Optional[str] = None) -> list[CodeBlockVersion]:
        """Versions from the block's first version up to ``version_id`` (default: current)."""
        block = self.require_block(block_id)
        start_id = version_id or block.current_version_id
        current = block.get_version(start_id)
        if current is None:
            raise NotFoundError("code block version", start_id)

        chain: list[CodeBlockVersion] = []
        seen: set[str] = set()
        while current is not None:
            if current.id in seen:
                raise LineageError(f"Version cycle detected in block {block_id} at {current.id}")
            seen.add(current.id)
            chain.append(current)
            if current.parent_version_id is None:
                break
            parent = block.get_version(current.parent_version_id)
            if parent is None:
                raise LineageError(
                    f"Version {current.id} in block {block_id} points at missing parent {current.parent_version_id}"
                )
            current = parent
        chain.reverse()
        return chain

    def relate(self, block_a_id: str, block_b_id: str) -> bool:
        if block_a_id == block_b_id:
            return False
        block_a = self._blocks.get(block_a_id)
        block_b = self._blocks.get(block_b_id)
        if block_a is None or block_b is None:
            return False

        if block_b_id not in block_a.related_block_ids:
            block_a.related_block_ids.append(block_b_id)
            self._mark_dirty(block_a_id)
        if block_a_id not in block_b.related_block_ids:
            block_b.related_block_ids.append(block_a_id)
            self._mark_dirty(block_b_id)
        return True

    def blocks_for_turn(self, turn_id: str) -> list[CodeBlock]:
        return [block for block in self._blocks.values() if turn_id in block.turn_ids]

    def get_code_content(self, refs: Iterable[CodeBlockRef]) -> dict[str, str]:
        content: dict[str, str] = {}
        for ref in refs:
            block = self._blocks.get(ref.id)
            if block is None:
                continue
            version = block.get_version(ref.version_id) or block.current_version
            content[ref.language] = version.code
        return content

    def extract_from_response(
        self,
        code_blocks: Mapping[str, str],
        turn_id: str,
        existing_refs: Iterable[CodeBlockRef] = (),
        target_language: Optional[str] = None,
    ) -> list[CodeBlockRef]:
        """将响应中的代码按语言合并进已有代码块，返回更新后的引用列表。

        指定 ``target_language`` 且响应中含该语言时只触碰对应代码块，其余引用原样保留；
        响应中没有该语言（或目标是自由文本描述）时退回处理全部语言。
        """
        contents = {_normalize_language(language): code for language, code in code_blocks.items()}
        target = _normalize_language(target_language) if target_language else None
        if target == _ALL_TARGET:
            target = None

        if target is not None and target in contents:
            languages = [target]
        else:
            languages = [language for language in contents if language]

        refs = [ref.model_copy() for ref in existing_refs]
        for language in languages:
            code = contents[language]
            if not code or not code.strip():
                logger.debug(f"Skipping empty {language} content from turn {turn_id}")
                continue

            index = _find_ref_index(refs, language)
            if index is None:
                block = self.create_block(language, code, turn_id)
                refs.append(
                    CodeBlockRef(
                        id=block.id,
                        language=language,
                        version_id=block.current_version_id,
                        contextual_name=infer_contextual_name(language, code, block.filename),
                    )
                )
                continue

            ref = refs[index]
            block = self.require_block(ref.id)
            referenced = block.get_version(ref.version_id) or block.current_version
            if referenced.code == code:
                continue
            version = self.add_version(ref.id, code, turn_id, f"Updated {language} code")
            refs[index] = ref.model_copy(
                update={
                    "version_id": version.id,
                    "contextual_name": infer_contextual_name(language, code, block.filename),
                }
            )
        return refs

    async def flush(self) -> int:
        """Persist dirty blocks to the memory service; failures keep them dirty.

        Entries are keyed by block id, so adapters that honour ``MemoryMetadata.key``
        hold one record per block. Adapters that only append keep every flush and
        may evict an old block's record once their capacity is reached.
        """
        if self._memory is None or not self._settings.persist_code_blocks:
            self._dirty.clear()
            return 0

        persisted = 0
        for block_id in list(self._dirty):
            block = self._blocks.get(block_id)
            if block is None:
                self._dirty.pop(block_id, None)
                continue
            try:
                await self._memory.add(
                    self._settings.code_collection,
                    block.current_version.code,
                    _block_memory_metadata(block),
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"Failed to persist code block {block_id}: {exc}")
                continue
            self._dirty.pop(block_id, None)
            persisted += 1
        return persisted

    async def initialize(self) -> int:
        """从记忆服务恢复代码块；失败时降级为空载入。"""
        if self._memory is None:
            return 0
        try:
            result = await self._memory.search(
                self._settings.code_collection,
                MemorySearchParams(types=[MemoryType.CODE], max_results=_LOAD_LIMIT),
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Failed to load code blocks from memory: {exc}")
            return 0

        latest: dict[str, MemoryEntry] = {}
        for entry in result.entries:
            block_id = entry.metadata.custom.get("block_id")
            if not block_id:
                continue
            previous = latest.get(block_id)
            if previous is None or entry.updated_at >= previous.updated_at:
                latest[block_id] = entry

        loaded = 0
        for block_id, entry in latest.items():
            if block_id in self._blocks:
                continue
            block = _restore_block(block_id, entry)
            if block is None:
                continue
            self._blocks[block_id] = block
            loaded += 1
        logger.debug(f"Loaded {loaded} code blocks from memory")
        return loaded

    @property
    def dirty_block_ids(self) -> list[str]:
        return list(self._dirty)

    def _diff(self, old: str, new: str) -> Optional[str]:
        if not self._settings.compute_diffs:
            return None
        try:
            return self._differ(old, new)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Diff computation failed, storing version without diff: {exc}")
            return None

    def _mark_dirty(self, block_id: str) -> None:
        self._dirty[block_id] = None


def _normalize_language(language: Optional[str]) -> str:
    return (language or "").strip().lower()


def _require_content(code: str) -> None:
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("Code block content must be non-empty text")


def _coerce_metadata(metadata: Optional[CodeBlockMetadata | Mapping[str, Any]]) -> CodeBlockMetadata:
    if metadata is None:
        return CodeBlockMetadata()
    if isinstance(metadata, CodeBlockMetadata):
        return metadata.model_copy(deep=True)
    return CodeBlockMetadata.model_validate(dict(metadata))


def _find_ref_index(refs: list[CodeBlockRef], language: str) -> Optional[int]:
    for index, ref in enumerate(refs):
        if _normalize_language(ref.language) == language:
            return index
    return None


def _block_memory_metadata(block: CodeBlock) -> MemoryMetadata:
    current = block.current_version
    return MemoryMetadata(
        type=MemoryType.CODE,
        key=block.id,
        source="conversation-engine",
        tags=[*block.metadata.tags, block.language],
        language=block.language,
        title=block.filename or f"{block.language} code block",
        custom={
            "block_id": block.id,
            "version_id": current.id,
            "filename": block.filename,
            "purpose": block.purpose,
            "classification": block.metadata.classification,
            "created_at": block.created_at,
            "turn_ids": list(block.turn_ids),
            "related_block_ids": list(block.related_block_ids),
            "history": [
                {
                    "id": version.id,
                    "created_at": version.created_at,
                    "turn_id": version.turn_id,
                    "parent_version_id": version.parent_version_id,
                    "change_summary": version.change_summary,
                }
                for version in block.versions
            ],
        },
    )


def _restore_block(block_id: str, entry: MemoryEntry) -> Optional[CodeBlock]:
    custom = entry.metadata.custom
    current_id = custom.get("version_id")
    if not current_id:
        logger.warning(f"Skipping stored code block {block_id} without a version id")
        return None

    turn_ids = [str(item) for item in custom.get("turn_ids") or []]
    versions: list[CodeBlockVersion] = []
    for item in custom.get("history") or []:
        if not isinstance(item, Mapping) or not item.get("id"):
            continue
        versions.append(
            CodeBlockVersion(
                id=item["id"],
                code=entry.content if item["id"] == current_id else "",
                created_at=float(item.get("created_at") or entry.created_at),
                turn_id=str(item.get("turn_id") or "unknown"),
                parent_version_id=item.get("parent_version_id"),
                change_summary=item.get("change_summary"),
            )
        )
    if not any(version.id == current_id for version in versions):
        versions.append(
            CodeBlockVersion(
                id=current_id,
                code=entry.content,
                created_at=entry.created_at,
                turn_id=turn_ids[0] if turn_ids else "unknown",
                parent_version_id=versions[-1].id if versions else None,
                change_summary="Restored from memory",
            )
        )

    tags = [tag for tag in entry.metadata.tags if tag != entry.metadata.language]
    return CodeBlock(
        id=block_id,
        language=entry.metadata.language or "text",
        filename=custom.get("filename"),
        purpose=custom.get("purpose"),
        created_at=float(custom.get("created_at") or entry.created_at),
        versions=versions,
        current_version_id=current_id,
        turn_ids=turn_ids,
        related_block_ids=[str(item) for item in custom.get("related_block_ids") or []],
        metadata=CodeBlockMetadata(tags=tags, classification=custom.get("classification")),
    )
