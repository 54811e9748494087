"""Symptom chatbot.

The conversation asks at most ``MAX_FOLLOW_UP_QUESTIONS`` follow-up
questions and then recommends up to ``MAX_RECOMMENDATIONS`` doctors. Only
doctors that exist in the database are ever returned, whatever the model
replies.
"""
import json
import logging

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from curabot.core import config
from curabot.models.chat import Chat, ChatMessage
from curabot.models.doctor import Doctor
from curabot.services.llm_client import LLMClient, parse_reply

logger = logging.getLogger(__name__)

GREETING = "Hi, I'm CuraBot! How may I assist you today?"
NO_MATCH_MESSAGE = "I'm sorry, I couldn't find suitable doctors for your symptoms at this time."
RECOMMENDATION_MESSAGE = "Based on your symptoms, here are the best doctor recommendations:"
MAX_FOLLOW_UP_QUESTIONS = 2
MAX_RECOMMENDATIONS = 3
OVERVIEW_PREVIEW_LENGTH = 300


class RecommendedDoctor(BaseModel):
    id: int | str
    name: str = ''
    speciality: str = ''
    qualification: str = ''
    reasoning: str = ''


class SymptomAnalysis(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    extracted_symptoms: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    recommended_doctors: list[RecommendedDoctor] = Field(default_factory=list)


def get_or_create_chat(db: Session, user_id: int) -> Chat:
    chat = db.query(Chat).filter(Chat.user_id == user_id).order_by(Chat.id.desc()).first()
    if chat is None:
        chat = Chat(user_id=user_id)
        db.add(chat)
        db.flush()
    return chat


def save_chat_message(db: Session, chat: Chat, sender: str, message: str) -> None:
    chat.messages.append(ChatMessage(sender=sender, message=message))
    db.commit()


def count_follow_up_questions(chat: Chat) -> int:
    return sum(
        1 for entry in chat.messages
        if entry.sender == 'bot' and entry.message != GREETING and '?' in entry.message
    )


def build_symptom_prompt(user_messages: list[str], doctors: list[Doctor]) -> str:
    doctor_lines = '\n\n'.join(
        f"""ID: {doctor.id}
Name: {doctor.name}
Speciality: {doctor.speciality}
Qualification: {doctor.qualification or ''}
Expertise: {', '.join(doctor.expertise or [])}
Overview: {(doctor.overview or '')[:OVERVIEW_PREVIEW_LENGTH]}"""
        for doctor in doctors
    )

    return f"""
You are a medical assistant AI that helps understand symptoms and recommend the best doctor.

Patient messages so far:
{chr(10).join(f'- {message}' for message in user_messages)}

Here is the list of available doctors:
{doctor_lines}

Please analyze the symptoms and:
1. Extract the symptoms mentioned.
2. Generate up to {MAX_FOLLOW_UP_QUESTIONS} follow-up questions to better understand the condition.
3. If enough data is available, recommend the {MAX_RECOMMENDATIONS} best doctors based on expertise,
   speciality and the patient's condition, using only the IDs listed above.
4. Provide a simple 2-line reason for each recommended doctor.

Respond with a JSON object:
{{
  "extractedSymptoms": ["symptom1", "symptom2"],
  "followUpQuestions": ["question1", "question2"],
  "recommendedDoctors": [
    {{"id": 1, "name": "Doctor's Name", "speciality": "Speciality",
      "qualification": "Qualification", "reasoning": "Simple reason (2 lines max)"}}
  ]
}}
"""


def analyze_symptoms(llm: LLMClient, user_messages: list[str], doctors: list[Doctor]) -> SymptomAnalysis:
    raw = llm.complete_json(
        build_symptom_prompt(user_messages, doctors),
        model=config.CHATBOT_MODEL,
        temperature=0.5,
    )
    analysis = parse_reply(raw, SymptomAnalysis)
    if analysis is None:
        logger.warning('Symptom analysis could not be parsed, continuing without it')
        return SymptomAnalysis()
    return analysis


def select_recommendations(analysis: SymptomAnalysis, doctors: list[Doctor]) -> list[dict]:
    doctors_by_id = {str(doctor.id): doctor for doctor in doctors}
    selected: list[dict] = []
    seen: set[str] = set()

    for recommendation in analysis.recommended_doctors:
        key = str(recommendation.id).strip()
        doctor = doctors_by_id.get(key)
        if doctor is None or key in seen:
            continue
        seen.add(key)
        selected.append({
            'id': doctor.id,
            'name': doctor.name,
            'speciality': doctor.speciality,
            'qualification': doctor.qualification,
            'reasoning': recommendation.reasoning,
        })
        if len(selected) == MAX_RECOMMENDATIONS:
            break

    return selected


def chatbot_response(db: Session, llm: LLMClient, user_id: int, message: str | None) -> dict:
    chat = get_or_create_chat(db, user_id)

    if not chat.messages:
        save_chat_message(db, chat, 'bot', GREETING)

    if not message or not message.strip():
        if chat.messages[-1].message != GREETING:
            save_chat_message(db, chat, 'bot', GREETING)
        return {'response': GREETING}

    save_chat_message(db, chat, 'user', message.strip())

    user_messages = [entry.message for entry in chat.messages if entry.sender == 'user']
    doctors = db.query(Doctor).order_by(Doctor.id).all()
    analysis = analyze_symptoms(llm, user_messages, doctors)

    if count_follow_up_questions(chat) < MAX_FOLLOW_UP_QUESTIONS and analysis.follow_up_questions:
        next_question = analysis.follow_up_questions[0]
        save_chat_message(db, chat, 'bot', next_question)
        return {'response': next_question}

    recommended = select_recommendations(analysis, doctors)
    if not recommended:
        save_chat_message(db, chat, 'bot', NO_MATCH_MESSAGE)
        return {'response': NO_MATCH_MESSAGE}

    final_response = {'message': RECOMMENDATION_MESSAGE, 'doctors': recommended}
    save_chat_message(db, chat, 'bot', json.dumps(final_response))
    logger.info('Recommended %s doctors to user %s', len(recommended), user_id)
    return final_response
