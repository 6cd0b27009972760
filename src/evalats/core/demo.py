from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from sqlalchemy.orm import Session

from evalats.core.activity import ActivityLogger, ActorRef
from evalats.core.collaboration import TeamService
from evalats.core.jobs import JobService
from evalats.core.pipeline import CandidateService, PipelineService
from evalats.core.scheduling import InterviewService
from evalats.db.repositories import Repository

logger = logging.getLogger(__name__)

DEMO_TEAM: list[dict[str, str]] = [
    {"user_id": "demo-recruiter", "email": "jennifer.smith@evalats.local", "name": "Jennifer Smith", "role": "recruiter"},
    {"user_id": "demo-manager", "email": "bob.wilson@evalats.local", "name": "Bob Wilson", "role": "hiring_manager"},
    {"user_id": "demo-interviewer", "email": "alice.johnson@evalats.local", "name": "Alice Johnson", "role": "interviewer"},
]

DEMO_JOBS: list[dict[str, Any]] = [
    {
        "title": "Senior Frontend Engineer",
        "department": "Engineering",
        "location": "San Francisco, CA",
        "description": "We're looking for an experienced frontend engineer...",
        "requirements": ["5+ years React", "TypeScript", "System design"],
        "urgency": "high",
        "salary_min": 150000,
        "salary_max": 200000,
    },
    {
        "title": "Product Designer",
        "department": "Design",
        "location": "Remote",
        "description": "Join our design team to create beautiful experiences...",
        "requirements": ["Figma expertise", "Design systems", "User research"],
        "urgency": "medium",
        "salary_min": 120000,
        "salary_max": 160000,
    },
    {
        "title": "Data Scientist",
        "department": "Data",
        "location": "New York, NY",
        "description": "Help us make data-driven decisions...",
        "requirements": ["Python", "ML/AI", "SQL", "Statistics"],
        "urgency": "low",
        "salary_min": 130000,
        "salary_max": 180000,
    },
]

DEMO_CANDIDATES: list[dict[str, Any]] = [
    {
        "name": "Sarah Chen",
        "email": "sarah.chen@email.com",
        "phone": "+1 (415) 555-0123",
        "location": "San Francisco, CA",
        "linkedin": "linkedin.com/in/sarahchen",
        "github": "github.com/sarahchen",
        "portfolio": "sarahchen.dev",
        "experience": "7 years",
        "current_company": "TechCorp Inc.",
        "education": "BS Computer Science, Stanford University",
        "skills": ["React", "TypeScript", "Node.js", "GraphQL", "AWS"],
        "source": "LinkedIn",
        "target_status": "interview",
        "evaluation": {"overall": 92, "technical": 95, "cultural": 88, "communication": 91},
    },
    {
        "name": "Michael Rodriguez",
        "email": "michael.r@email.com",
        "phone": "+1 (212) 555-0456",
        "location": "Remote",
        "experience": "5 years",
        "current_company": "DesignStudio",
        "education": "BFA Design, Parsons",
        "skills": ["Figma", "UI/UX", "Prototyping", "Design Systems"],
        "source": "Referral",
        "target_status": "screening",
        "evaluation": {"overall": 88, "technical": 85, "cultural": 92, "communication": 89},
    },
    {
        "name": "Emily Johnson",
        "email": "emily.j@email.com",
        "phone": "+1 (917) 555-0789",
        "location": "New York, NY",
        "experience": "4 years",
        "current_company": "DataCorp",
        "education": "MS Data Science, NYU",
        "skills": ["Python", "Machine Learning", "SQL", "TensorFlow"],
        "source": "Careers Page",
        "target_status": "offer",
        "evaluation": {"overall": 95, "technical": 98, "cultural": 91, "communication": 94},
    },
]


def seed_demo_data(session: Session) -> dict[str, Any]:
    repo = Repository(session)
    if repo.list_all_candidates():
        return {"seeded": False, "reason": "Data already seeded"}

    activity = ActivityLogger(session)
    team = TeamService(session, activity=activity)
    members = [team.upsert_member(**member) for member in DEMO_TEAM]
    recruiter = ActorRef(members[0].id)

    jobs = [JobService(session).create(**job) for job in DEMO_JOBS]
    for job in jobs:
        team.add_to_hiring_team(job_id=job.id, member_id=members[1].id, role="hiring_manager", actor=recruiter, is_primary=True)

    candidates_service = CandidateService(session, activity=activity)
    pipeline = PipelineService(session, activity=activity)
    candidates = []
    for job, profile in zip(jobs, DEMO_CANDIDATES):
        values = {key: value for key, value in profile.items() if key not in {"target_status", "evaluation"}}
        candidate = candidates_service.create(position=job.title, job_id=job.id, actor=recruiter, **values)
        while candidate.status != profile["target_status"]:
            pipeline.advance(candidate.id, recruiter)
        candidates_service.update_evaluation(candidate.id, profile["evaluation"])
        candidates.append(candidate)

    candidates_service.add_note(
        candidates[0].id,
        author="Jennifer Smith",
        role="Recruiter",
        content="Strong candidate with excellent technical skills. Previous experience at FAANG companies.",
    )

    interviews = InterviewService(session, activity=activity)
    day = date.today() + timedelta(days=3)
    interviews.schedule(
        candidate_id=candidates[0].id,
        job_id=jobs[0].id,
        interview_type="Technical Interview",
        day=day,
        time_value="10:00",
        actor=recruiter,
        duration_minutes=90,
        interviewers=["Alice Johnson", "Bob Wilson"],
        location="Zoom",
    )
    interviews.schedule(
        candidate_id=candidates[1].id,
        job_id=jobs[1].id,
        interview_type="Portfolio Review",
        day=day,
        time_value="14:00",
        actor=recruiter,
        duration_minutes=60,
        interviewers=["Emma Davis"],
        location="Office",
    )

    logger.info("Seeded demo data: %s jobs, %s candidates", len(jobs), len(candidates))
    return {
        "seeded": True,
        "team_members": len(members),
        "jobs": len(jobs),
        "candidates": len(candidates),
        "interviews": 2,
    }
