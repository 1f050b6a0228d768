"""
Persona & Context Builder

Resolves an agent name to its persona and builds the system prompt and the
first user turn of an execution from persona + task + repository context.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Persona:
    """Built-in identity of a team member."""
    name: str
    role: str
    base_prompt: str
    territory: List[str] = field(default_factory=list)
    off_limits: List[str] = field(default_factory=list)


@dataclass
class TaskContext:
    id: str
    title: str
    description: str
    priority: str = "Medium"
    labels: List[str] = field(default_factory=list)


@dataclass
class RepoContext:
    owner: str
    repo: str
    branch: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


# Persona registry keyed by lower-case agent name
AGENT_PERSONAS: Dict[str, Persona] = {
    "sam": Persona(
        name="SAM",
        role="backend",
        base_prompt=(
            "You are SAM, the backend engineer of the team. You own the data layer, "
            "server functions, scripts and integrations."
        ),
        territory=["convex/", "scripts/", "lib/"],
        off_limits=["app/", "components/"],
    ),
    "leo": Persona(
        name="LEO",
        role="frontend",
        base_prompt=(
            "You are LEO, the frontend engineer of the team. You build pages and UI "
            "components that are fast, accessible and consistent."
        ),
        territory=["app/", "components/"],
        off_limits=["convex/", "scripts/"],
    ),
    "quinn": Persona(
        name="QUINN",
        role="qa",
        base_prompt=(
            "You are QUINN, the QA engineer of the team. You write tests, hunt bugs "
            "and fix the small ones you find. You may read any file."
        ),
        territory=["tests/", "e2e/"],
    ),
    "max": Persona(
        name="MAX",
        role="pm",
        base_prompt=(
            "You are MAX, the PM of the team. You plan, write specs and keep "
            "documentation current. You do not change application code."
        ),
        territory=["docs/", "DISPATCH.md"],
        off_limits=["app/", "components/", "convex/"],
    ),
    "alex": Persona(
        name="ALEX",
        role="devops",
        base_prompt=(
            "You are ALEX, the DevOps engineer of the team. You own CI, deployment "
            "and infrastructure configuration."
        ),
        territory=[".github/", "vercel.json", "scripts/"],
    ),
}


WORKING_RULES = """## How you work
- Work autonomously. Never ask questions; decide and act.
- Use read_file and list_files to understand the code before changing it.
- Every write_file, create_file and delete_file is staged, not pushed.
- Always write the COMPLETE file content; partial files overwrite the original.
- Stay inside your territory unless the task explicitly requires otherwise.
- When the task is done, call task_complete with a one-line summary.
  All staged changes are then committed together in a single commit."""


def get_persona(agent_name: str) -> Optional[Persona]:
    """Look up a built-in persona by agent name (case-insensitive)."""
    return AGENT_PERSONAS.get(agent_name.strip().lower())


def get_repo_context(owner: str, repo: str, branch: str) -> RepoContext:
    return RepoContext(owner=owner, repo=repo, branch=branch)


def build_system_prompt(
    persona: Persona,
    task: TaskContext,
    repo: RepoContext,
    soul: Optional[str] = None,
) -> str:
    """
    Assemble the system prompt for an execution.

    ``soul`` is the identity text registered for the agent; when present it
    replaces the persona's built-in base prompt.
    """
    sections = ["=== IDENTITY ===", (soul or persona.base_prompt).strip(), ""]

    if persona.territory or persona.off_limits:
        sections.append("=== TERRITORY ===")
        if persona.territory:
            sections.append(f"Your files: {', '.join(persona.territory)}")
        if persona.off_limits:
            sections.append(f"Do NOT touch: {', '.join(persona.off_limits)}")
        sections.append("")

    sections.extend([
        "=== REPOSITORY ===",
        f"Repository: {repo.full_name}",
        f"Branch: {repo.branch}",
        "",
        "=== TASK ===",
        f"Ticket: {task.id}",
        f"Title: {task.title}",
        f"Priority: {task.priority}",
    ])
    if task.labels:
        sections.append(f"Labels: {', '.join(task.labels)}")
    sections.extend(["", "Description:", task.description or "(no description)", "", WORKING_RULES])
    return "\n".join(sections)


def build_user_message(task: TaskContext) -> str:
    """First user turn of the conversation."""
    return (
        f"Task {task.id}: {task.title}\n\n"
        f"{task.description or '(no description)'}\n\n"
        "Start by exploring the relevant files, then make the changes. "
        "Call task_complete when you are done."
    )
