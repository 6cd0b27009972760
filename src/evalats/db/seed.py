from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from evalats.db.models import ComplianceSetting, EmailTemplate

SIGNATURE = """
Best regards,
The {{ company_name }} Team"""

DEFAULT_EMAIL_TEMPLATES: list[dict[str, object]] = [
    {
        "name": "Interview Invitation",
        "category": "interview",
        "type": "interview_invitation",
        "subject": "Interview Invitation - {{ job_title }} Position at {{ company_name }}",
        "content": """Dear {{ candidate_name }},

Thank you for your interest in the {{ job_title }} position at {{ company_name }}. We were impressed with your application and would like to invite you for an interview.

Interview Details:
- Position: {{ job_title }}
- Date: {{ interview_date }}
- Time: {{ interview_time }}
- Duration: {{ interview_duration }}
- Location: {{ interview_location }}

Please confirm your availability by replying to this email. If you need to reschedule, let us know.
"""
        + SIGNATURE,
        "variables": [
            "candidate_name",
            "job_title",
            "interview_date",
            "interview_time",
            "interview_duration",
            "interview_location",
        ],
        "tags": ["interview", "invitation"],
    },
    {
        "name": "Application Acknowledgment",
        "category": "application",
        "type": "follow_up",
        "subject": "Thank you for your application - {{ job_title }}",
        "content": """Dear {{ candidate_name }},

Thank you for applying for the {{ job_title }} position at {{ company_name }}. We have received your application and are currently reviewing it.

We will be in touch within the next few days to update you on the status of your application.
"""
        + SIGNATURE,
        "variables": ["candidate_name", "job_title"],
        "tags": ["application", "acknowledgment"],
    },
    {
        "name": "Job Offer",
        "category": "offer",
        "type": "offer",
        "subject": "Job Offer - {{ job_title }} Position at {{ company_name }}",
        "content": """Dear {{ candidate_name }},

We are pleased to offer you the position of {{ job_title }} at {{ company_name }}.

Offer Details:
- Position: {{ job_title }}
- Start Date: {{ start_date }}
- Salary: {{ salary }}
- Benefits: {{ benefits }}

Please review the attached offer letter. We would like to have your response by {{ response_deadline }}.
"""
        + SIGNATURE,
        "variables": ["candidate_name", "job_title", "start_date", "salary", "benefits", "response_deadline"],
        "tags": ["offer", "job"],
    },
    {
        "name": "Application Rejection",
        "category": "rejection",
        "type": "rejection",
        "subject": "Update on your application - {{ job_title }}",
        "content": """Dear {{ candidate_name }},

Thank you for your interest in the {{ job_title }} position at {{ company_name }} and for taking the time to apply.

After careful consideration, we have decided to move forward with other candidates whose experience more closely matches our current needs.

We wish you the best of luck in your job search.
"""
        + SIGNATURE,
        "variables": ["candidate_name", "job_title"],
        "tags": ["rejection", "application"],
    },
    {
        "name": "Assessment Invitation",
        "category": "assessment",
        "type": "assessment",
        "subject": "Next Step: Assessment for {{ job_title }} Position",
        "content": """Dear {{ candidate_name }},

As the next step in our hiring process for the {{ job_title }} position, we would like to invite you to complete an assessment.

Assessment Details:
- Assessment Type: {{ assessment_type }}
- Time Limit: {{ time_limit }}
- Instructions: {{ instructions }}

Please complete the assessment by {{ deadline }}: {{ assessment_link }}
"""
        + SIGNATURE,
        "variables": [
            "candidate_name",
            "job_title",
            "assessment_type",
            "time_limit",
            "instructions",
            "deadline",
            "assessment_link",
        ],
        "tags": ["assessment", "invitation"],
    },
]

DEFAULT_COMPLIANCE_SETTINGS: list[dict[str, object]] = [
    {
        "setting_key": "eeo_collection_enabled",
        "value": True,
        "category": "eeo",
        "description": "Offer voluntary EEO self-identification during application",
    },
    {
        "setting_key": "four_fifths_threshold",
        "value": 0.8,
        "category": "eeo",
        "description": "Impact ratio below which a group is flagged for adverse impact",
    },
    {
        "setting_key": "data_retention_days",
        "value": 365 * 3,
        "category": "ofccp",
        "description": "How long applicant records are retained",
    },
]


def seed_email_templates(session: Session) -> int:
    inserted = 0
    for template in DEFAULT_EMAIL_TEMPLATES:
        existing = session.scalar(select(EmailTemplate).where(EmailTemplate.name == template["name"]))
        if existing:
            continue
        session.add(
            EmailTemplate(
                name=str(template["name"]),
                category=str(template["category"]),
                type=str(template["type"]),
                subject=str(template["subject"]),
                content=str(template["content"]),
                variables_json=list(template["variables"]),
                tags_json=list(template["tags"]),
                is_active=True,
            )
        )
        inserted += 1

    session.commit()
    return inserted


def seed_compliance_settings(session: Session) -> int:
    inserted = 0
    for setting in DEFAULT_COMPLIANCE_SETTINGS:
        key = str(setting["setting_key"])
        if session.scalar(select(ComplianceSetting).where(ComplianceSetting.setting_key == key)):
            continue
        session.add(
            ComplianceSetting(
                setting_key=key,
                value_json=setting["value"],
                category=str(setting["category"]),
                description=str(setting["description"]),
                updated_by="system",
            )
        )
        inserted += 1

    session.commit()
    return inserted
