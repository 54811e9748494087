import logging

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from curabot.core import config
from curabot.core.errors import ForbiddenError, NotFoundError, UpstreamError
from curabot.models.chat import Chat
from curabot.models.doctor import Doctor
from curabot.models.user import User
from curabot.services.booking import get_appointment
from curabot.services.llm_client import LLMClient, parse_reply

logger = logging.getLogger(__name__)

NO_TRANSCRIPT_SUMMARY = 'The patient did not use the chatbot before booking.'
UNAVAILABLE_SUMMARY = 'AI summary is unavailable for this appointment.'


class PatientSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    summary: str = ''
    key_symptoms: list[str] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)
    generated_by_ai: bool = True


def build_summary_prompt(patient_name: str, transcript: list[dict]) -> str:
    lines = '\n'.join(f"{entry['sender']}: {entry['message']}" for entry in transcript)
    return f"""
You are assisting a doctor before a consultation. Summarize the conversation between the
patient {patient_name} and the CuraBot assistant.

Conversation:
{lines}

Respond with a JSON object:
{{
  "summary": "Three sentences at most describing the complaint",
  "keySymptoms": ["symptom1", "symptom2"],
  "suggestedQuestions": ["question the doctor may ask"]
}}
"""


def summarize_transcript(llm: LLMClient, patient_name: str, transcript: list[dict]) -> PatientSummary:
    if not any(entry['sender'] == 'user' for entry in transcript):
        return PatientSummary(summary=NO_TRANSCRIPT_SUMMARY, generated_by_ai=False)

    try:
        raw = llm.complete_json(
            build_summary_prompt(patient_name, transcript),
            model=config.CHATBOT_MODEL,
            temperature=0.2,
        )
    except UpstreamError as exc:
        logger.warning('Patient summary unavailable: %s', exc.message)
        return PatientSummary(summary=UNAVAILABLE_SUMMARY, generated_by_ai=False)

    summary = parse_reply(raw, PatientSummary)
    if summary is None:
        return PatientSummary(summary=UNAVAILABLE_SUMMARY, generated_by_ai=False)
    summary.generated_by_ai = True
    return summary


def appointment_patient_summary(
    db: Session,
    llm: LLMClient,
    appointment_id: int,
    actor_id: int,
    actor_role: str,
) -> dict:
    appointment = get_appointment(db, appointment_id)

    if actor_role != 'admin':
        doctor = db.query(Doctor).filter(Doctor.user_id == actor_id).first()
        if doctor is None or doctor.id != appointment.doctor_id:
            raise ForbiddenError('Unauthorized')

    patient = db.get(User, appointment.patient_id)
    if patient is None:
        raise NotFoundError('Patient not found')

    transcript: list[dict] = []
    if appointment.chat_session_id is not None:
        chat = db.get(Chat, appointment.chat_session_id)
        if chat is not None:
            transcript = [
                {'sender': entry.sender, 'message': entry.message, 'created_at': entry.created_at.isoformat()}
                for entry in chat.messages
            ]

    summary = summarize_transcript(llm, patient.name, transcript)

    return {
        'appointment': appointment,
        'patient': {'id': patient.id, 'name': patient.name, 'email': patient.email, 'phone': patient.phone},
        'chat_transcript': transcript,
        'ai_summary': summary.model_dump(),
    }
