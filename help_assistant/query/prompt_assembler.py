"""
Prompt assembly for the help assistant.

Builds a two-message sequence for the generative model:
- system: role rules, application overview, capability rules, recent
  conversation and the user's current screen
- user: retrieved documentation followed by the question

Every variable section is truncated to its own token budget.
"""

from dataclasses import dataclass

from help_assistant.core.config import Settings
from help_assistant.core.modules import MODULE_DEFINITIONS
from help_assistant.core.schemas_assistant import (
    ConversationMemory,
    PromptMessage,
    RetrievedChunk,
    SourceReference,
    UIContext,
)
from help_assistant.core.tokenizer import truncate_to_tokens
from help_assistant.query.memory import format_memory_for_prompt

NO_DOCUMENTS_TEXT = "DOCUMENTACIÓN: No se encontraron documentos relevantes."
DOCS_HEADER = "DOCUMENTACIÓN RELEVANTE:"
DOC_SEPARATOR = "\n\n---\n\n"
QUESTION_HEADER = "PREGUNTA DEL USUARIO:"


@dataclass
class PromptBudgets:
    """Token budget per prompt section."""

    capabilities: int = 700
    memory: int = 300
    docs: int = 2500
    question: int = 200

    @classmethod
    def from_settings(cls, settings: Settings) -> "PromptBudgets":
        return cls(
            capabilities=settings.TOKEN_BUDGET_CAPABILITIES,
            memory=settings.TOKEN_BUDGET_MEMORY,
            docs=settings.TOKEN_BUDGET_DOCS,
            question=settings.TOKEN_BUDGET_QUESTION,
        )


def build_system_prompt(locale: str = "español (México)") -> str:
    """Fixed role and behavior rules."""
    return f"""Eres un asistente de ayuda integrado en el Portal Médico. Tu propósito es guiar a los usuarios sobre cómo usar la aplicación.

REGLAS:
1. Las REGLAS DE LA APLICACIÓN, cuando se incluyan, son la fuente de verdad sobre lo que se puede o no se puede hacer. Tienen prioridad sobre la documentación.
2. Para todo lo demás, responde SOLO con información de la documentación proporcionada. Si no tienes información, di "No tengo información sobre eso en este momento."
3. Responde SIEMPRE en {locale}.
4. Sé conciso y directo. Usa listas cuando sea apropiado.
5. Si el usuario pregunta sobre una funcionalidad específica, incluye la ruta de navegación (ej: "Ve a Menú > Expedientes Médicos > Pacientes").
6. NO inventes funcionalidades que no estén en la documentación.
7. NO ejecutes acciones en la aplicación ni digas que las ejecutaste. Solo guías al usuario.
8. Si la pregunta es ambigua, pide clarificación.
9. Menciona el módulo o sección relevante para que el usuario sepa dónde encontrar la información."""


def build_static_context() -> str:
    """Overview of every module in the catalog."""
    module_list = "\n".join(f"- {m.name}: {m.description}" for m in MODULE_DEFINITIONS)
    return (
        "INFORMACIÓN DE LA APLICACIÓN:\n"
        "El Portal Médico es una plataforma web para médicos con los siguientes módulos:\n"
        f"{module_list}\n\n"
        "La aplicación está en español (México) y es responsive (escritorio, tablet, móvil)."
    )


def build_ui_context_line(ui_context: UIContext | None) -> str:
    if ui_context is None or not ui_context.current_path:
        return ""
    return f"El usuario se encuentra actualmente en la ruta: {ui_context.current_path}"


def format_retrieved_docs(chunks: list[RetrievedChunk]) -> str:
    """
    Render chunks with an index and module/submodule/section metadata.

    An empty list renders an explicit "no documents" placeholder so the
    model never assumes passages exist.
    """
    if not chunks:
        return NO_DOCUMENTS_TEXT

    sections = []
    for i, chunk in enumerate(chunks, start=1):
        header_parts = [f"[Doc {i}]", f"Módulo: {chunk.module}"]
        if chunk.submodule:
            header_parts.append(f"Sub: {chunk.submodule}")
        label = chunk.heading or chunk.section
        if label:
            header_parts.append(f"Sección: {label}")
        sections.append(f"{' | '.join(header_parts)}\n{chunk.content}")

    return f"{DOCS_HEADER}\n\n{DOC_SEPARATOR.join(sections)}"


def extract_sources(chunks: list[RetrievedChunk]) -> list[SourceReference]:
    """One source per distinct (module, file_path), in chunk order."""
    seen: set[tuple[str, str]] = set()
    sources: list[SourceReference] = []

    for chunk in chunks:
        key = (chunk.module, chunk.file_path)
        if key in seen:
            continue
        seen.add(key)
        sources.append(
            SourceReference(
                module=chunk.module,
                submodule=chunk.submodule,
                heading=chunk.heading,
                file_path=chunk.file_path,
            )
        )

    return sources


def assemble_prompt(
    question: str,
    chunks: list[RetrievedChunk],
    memory: ConversationMemory | None,
    capability_text: str | None = None,
    ui_context: UIContext | None = None,
    budgets: PromptBudgets | None = None,
    locale: str = "español (México)",
) -> list[PromptMessage]:
    """
    Assemble the system + user messages for the generative model.

    Args:
        question: Validated user question
        chunks: Deduplicated retrieved chunks
        memory: Recent conversation, if any
        capability_text: Rendered capability rules for the implicated modules
        ui_context: Where the user currently is in the application
        budgets: Per-section token budgets
        locale: Answer language

    Returns:
        [system message, user message]
    """
    budgets = budgets or PromptBudgets()

    system_parts = [build_system_prompt(locale), build_static_context()]

    if capability_text:
        system_parts.append(truncate_to_tokens(capability_text, budgets.capabilities))

    memory_text = format_memory_for_prompt(memory)
    if memory_text:
        system_parts.append(truncate_to_tokens(memory_text, budgets.memory))

    ui_line = build_ui_context_line(ui_context)
    if ui_line:
        system_parts.append(ui_line)

    docs_text = truncate_to_tokens(format_retrieved_docs(chunks), budgets.docs)
    question_text = truncate_to_tokens(question, budgets.question)

    return [
        PromptMessage(role="system", content="\n\n".join(system_parts)),
        PromptMessage(role="user", content=f"{docs_text}\n\n{QUESTION_HEADER}\n{question_text}"),
    ]
