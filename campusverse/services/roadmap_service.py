from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from campusverse.core.clock import as_utc
from campusverse.core.config import settings
from campusverse.core.errors import ValidationError
from campusverse.models.ai_credit import CreditAction
from campusverse.models.roadmap import Roadmap
from campusverse.schemas.ai import Resource, RoadmapPhase
from campusverse.services.ai_credit_service import consume

logger = logging.getLogger(__name__)

LEVELS = ("beginner", "intermediate", "advanced")

# (title, description, topics, milestones) per level; the role is filled in later
_TEMPLATES: Dict[str, List[tuple]] = {
    "beginner": [
        (
            "Foundations",
            "Learn the core concepts and tooling a {role} relies on every day.",
            ["Programming fundamentals", "Version control with Git", "Command line basics"],
            ["Complete an introductory course", "Push a first project to GitHub"],
        ),
        (
            "Core skills",
            "Build small projects that exercise the main {role} skill set.",
            ["Data structures", "Working with APIs", "Testing basics"],
            ["Ship two guided projects", "Write tests for one of them"],
        ),
        (
            "Portfolio",
            "Assemble a portfolio and prepare for {role} interviews.",
            ["Capstone project", "Resume writing", "Interview practice"],
            ["Publish a capstone project", "Complete five mock interviews"],
        ),
    ],
    "intermediate": [
        (
            "Deepen fundamentals",
            "Close the gaps between project experience and what a {role} is expected to know.",
            ["System design basics", "Databases and indexing", "Debugging and profiling"],
            ["Refactor an old project", "Document one design decision"],
        ),
        (
            "Specialise",
            "Pick the specialisation that matches the {role} position you want.",
            ["Framework internals", "Cloud deployment", "Observability"],
            ["Deploy a service to the cloud", "Add monitoring to it"],
        ),
        (
            "Real-world experience",
            "Work on code other people depend on.",
            ["Open source contribution", "Code review", "Collaboration workflows"],
            ["Land a merged open source PR", "Apply to ten {role} openings"],
        ),
    ],
    "advanced": [
        (
            "Architecture",
            "Design systems at the scale a senior {role} owns.",
            ["Distributed systems", "Scalability patterns", "Security reviews"],
            ["Write an architecture proposal", "Lead a design review"],
        ),
        (
            "Leadership",
            "Grow the technical leadership expected of a senior {role}.",
            ["Mentoring", "Technical roadmapping", "Stakeholder communication"],
            ["Mentor a junior engineer", "Own a quarterly technical plan"],
        ),
        (
            "Visibility",
            "Make your expertise visible beyond your team.",
            ["Conference talks", "Technical writing", "Community building"],
            ["Publish two technical articles", "Give one public talk"],
        ),
    ],
}


# Next smaller unit, used when a duration is too short to split evenly
_FINER_UNIT = {"year": ("month", 12), "month": ("week", 4), "week": ("day", 7)}


def _amount(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def _phase_durations(duration: str, phases: int = 3) -> List[str]:
    # "6 months" -> 2 + 2 + 2 months, "4 months" -> 2 + 1 + 1, "2 months" -> 3 + 3 + 2 weeks
    parts = str(duration).strip().lower().split()
    if len(parts) == 2 and parts[0].isdigit():
        n, unit = int(parts[0]), parts[1].rstrip("s")
        while 0 < n < phases and unit in _FINER_UNIT:
            unit, factor = _FINER_UNIT[unit]
            n *= factor
        if n >= phases:
            base, extra = divmod(n, phases)
            return [_amount(base + (1 if i < extra else 0), unit) for i in range(phases)]
    return ["1/3 of " + str(duration).strip()] * phases


def build_phases(target_role: str, current_level: str, duration: str) -> List[RoadmapPhase]:
    if current_level not in LEVELS:
        raise ValidationError("current_level must be one of beginner, intermediate, advanced")

    role = target_role.strip()
    durations = _phase_durations(duration)
    phases: List[RoadmapPhase] = []
    for (title, description, topics, milestones), phase_duration in zip(_TEMPLATES[current_level], durations):
        phases.append(
            RoadmapPhase(
                title=title,
                duration=phase_duration,
                description=description.format(role=role),
                topics=list(topics),
                resources=[
                    Resource(
                        title=f"{topic} for {role}",
                        type="search",
                        url="https://www.google.com/search?q=" + f"{topic} {role}".replace(" ", "+"),
                    )
                    for topic in topics[:2]
                ],
                milestones=[m.format(role=role) for m in milestones],
            )
        )
    return phases


def generate_roadmap(db: Session, user_id: int, target_role: str, current_level: str, duration: str) -> Roadmap:
    """Charge the roadmap cost and store a three-phase roadmap in one transaction."""
    phases = build_phases(target_role, current_level, duration)
    cost = int(settings.AI_ROADMAP_COST)

    consume(
        db,
        user_id,
        cost,
        CreditAction.roadmap_generate,
        f"Roadmap for {target_role.strip()} ({current_level})",
        commit=False,
    )
    roadmap = Roadmap(
        user_id=int(user_id),
        title=f"{target_role.strip()} roadmap",
        target_role=target_role.strip(),
        current_level=current_level,
        duration=str(duration).strip(),
        phases_json=[p.model_dump() for p in phases],
        credits_used=cost,
    )
    db.add(roadmap)
    db.commit()
    db.refresh(roadmap)

    logger.info("Roadmap generated id=%s user_id=%s level=%s", roadmap.id, user_id, current_level)
    return roadmap


def roadmap_to_dict(roadmap: Roadmap) -> Dict[str, Any]:
    return {
        "id": roadmap.id,
        "user_id": roadmap.user_id,
        "title": roadmap.title,
        "target_role": roadmap.target_role,
        "current_level": roadmap.current_level,
        "duration": roadmap.duration,
        "phases": [RoadmapPhase.model_validate(p).model_dump() for p in (roadmap.phases_json or [])],
        "credits_used": int(roadmap.credits_used),
        "created_at": as_utc(roadmap.created_at).isoformat() if roadmap.created_at else None,
    }


def list_roadmaps(db: Session, user_id: int) -> List[Roadmap]:
    return (
        db.query(Roadmap)
        .filter(Roadmap.user_id == int(user_id))
        .order_by(Roadmap.created_at.desc(), Roadmap.id.desc())
        .all()
    )
