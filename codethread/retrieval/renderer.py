from __future__ import annotations

from typing import Iterable, Optional, Sequence

from codethread.conversation.models import Turn
from codethread.retrieval.models import CodeSnippet


def render_turn_block(turn: Turn) -> str:
    reply = turn.response.explanation or turn.response.content or ""
    return f"User: {turn.prompt.content}\nAssistant: {reply}".strip()


def render_code_snippet(snippet: CodeSnippet) -> str:
    return f"[CODE {snippet.language} – {snippet.name}]\n```{snippet.language}\n{snippet.code}\n```"


def render_conversation_context(turns: Iterable[Turn], snippets: Iterable[CodeSnippet] = ()) -> str:
    """按时间先后渲染对话，再附上相关代码块。"""
    blocks = [render_turn_block(turn) for turn in turns]
    blocks.extend(render_code_snippet(snippet) for snippet in snippets)
    return "\n\n".join(block for block in blocks if block).strip()


def render_follow_up_context(
    action: str,
    target: str,
    conversation: Optional[str],
    snippets: Sequence[CodeSnippet],
) -> str:
    sections: list[str] = [f"Action: {action}\nTarget: {target}"]
    if conversation:
        sections.append(f"Recent conversation:\n{conversation}")
    if snippets:
        code_lines = ["Relevant code blocks:"]
        for snippet in snippets:
            code_lines.append(f"Language: {snippet.language}\n```{snippet.language}\n{snippet.code}\n```")
        sections.append("\n".join(code_lines))
    return "\n\n".join(sections).strip()
