"""
Timetable Generator Module - EduSched School Management System

This module asks a language model for a timetable. The admin-maintained
entity lists (courses, teachers, classrooms, time slots, student groups)
are rendered into a single prompt; the model's reply is treated as
best-effort JSON and normalized into schedule entries. No scheduling or
conflict resolution happens locally.
"""

import json
import logging
import re
import uuid
from typing import Dict, List, Any, Optional

from jinja2 import Template
from openai import OpenAI, OpenAIError

SCHEDULE_FIELDS = ('day', 'time', 'course', 'teacher', 'classroom')

SYSTEM_PROMPT = "You are a timetable generator expert. You reply with JSON only."

PROMPT_TEMPLATE = Template("""\
You are given the following data about courses, teachers, classrooms, and time slots.

Generate a conflict-free timetable in JSON format based on the following information.
Make sure that every class has a teacher, a classroom, a time slot, and a course.
Ensure that the 'day' and 'time' fields are always populated for every single entry in the schedule.
Do NOT include a 'studentGroup' in the output.
Reply with a JSON object of the form {"schedule": [{"day": ..., "time": ..., "course": ..., "teacher": ..., "classroom": ...}]}.

Courses: {{ courses | join(', ') }}
Teachers: {{ teachers | join(', ') }}
Classrooms: {{ classrooms | join(', ') }}
Time Slots: {{ time_slots | join(', ') }}
Student Groups to consider for scheduling: {{ student_groups | join(', ') }}""")

MISSING_DATA_ERROR = ('Please provide all required data: courses, teachers, classrooms, '
                      'time slots, and student groups.')
INVALID_FORMAT_ERROR = ('The AI returned a schedule in an invalid format. '
                        'Please try again or refine your input data.')
UNEXPECTED_ERROR = 'Failed to generate schedule due to an unexpected error.'

CODE_FENCE_PATTERN = re.compile(r'^```(?:json)?\s*(.*?)\s*```$', re.DOTALL)


class ScheduleFormatError(ValueError):
    """Raised when the model reply cannot be turned into schedule entries."""


class TimetableGenerator:
    """
    LLM-backed timetable generation.

    The client only needs ``chat.completions.create``; an ``openai.OpenAI``
    instance is built from the API key when no client is passed.
    """

    def __init__(self, client=None, api_key: Optional[str] = None,
                 model: str = 'gpt-4o-mini', temperature: float = 0.2,
                 timeout: float = 60.0):
        self.logger = logging.getLogger(__name__)
        self.model = model
        self.temperature = temperature

        if client is None and api_key:
            client = OpenAI(api_key=api_key, timeout=timeout)
        self.client = client

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def build_prompt(self, courses: List[str], teachers: List[str], classrooms: List[str],
                     time_slots: List[str], student_groups: List[str]) -> str:
        return PROMPT_TEMPLATE.render(
            courses=courses,
            teachers=teachers,
            classrooms=classrooms,
            time_slots=time_slots,
            student_groups=student_groups
        )

    def generate(self, courses: List[str], teachers: List[str], classrooms: List[str],
                 time_slots: List[str], student_groups: List[str],
                 model: Optional[str] = None) -> Dict[str, Any]:
        """
        Generate a timetable from the five entity lists.

        Returns:
            Dict[str, Any]: {'success': True, 'schedule': [...]} or an error result
        """
        if not all([courses, teachers, classrooms, time_slots, student_groups]):
            return {
                'success': False,
                'error': MISSING_DATA_ERROR,
                'error_type': 'missing_data'
            }

        if not self.is_configured:
            return {
                'success': False,
                'error': 'Timetable generation is not configured. Set OPENAI_API_KEY.',
                'error_type': 'not_configured'
            }

        prompt = self.build_prompt(courses, teachers, classrooms, time_slots, student_groups)

        try:
            response = self.client.chat.completions.create(
                model=model or self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt}
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"}
            )
            reply = response.choices[0].message.content or ''
        except OpenAIError as e:
            self.logger.error(f"Timetable generation request failed: {str(e)}")
            return {
                'success': False,
                'error': UNEXPECTED_ERROR,
                'error_type': 'llm_error'
            }
        except Exception as e:
            self.logger.error(f"Unexpected error during timetable generation: {str(e)}")
            return {
                'success': False,
                'error': UNEXPECTED_ERROR,
                'error_type': 'llm_error'
            }

        try:
            schedule = self.parse_schedule(reply)
        except ScheduleFormatError as e:
            self.logger.error(f"Error parsing generated schedule: {str(e)}")
            return {
                'success': False,
                'error': INVALID_FORMAT_ERROR,
                'error_type': 'invalid_format'
            }

        self.logger.info(f"Timetable generated with {len(schedule)} entries")
        return {'success': True, 'schedule': schedule}

    def parse_schedule(self, reply: str) -> List[Dict[str, str]]:
        """
        Normalize a model reply into schedule entries with fresh ids.

        Raises:
            ScheduleFormatError: If no usable entries can be extracted
        """
        text = str(reply or '').strip()
        fenced = CODE_FENCE_PATTERN.match(text)
        if fenced:
            text = fenced.group(1)

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise ScheduleFormatError(f"Reply is not valid JSON: {e}")

        if isinstance(parsed, dict):
            parsed = parsed.get('schedule')
            # The schedule may itself arrive as a JSON-encoded string
            if isinstance(parsed, str):
                try:
                    parsed = json.loads(parsed)
                except json.JSONDecodeError as e:
                    raise ScheduleFormatError(f"Nested schedule is not valid JSON: {e}")

        if not isinstance(parsed, list):
            raise ScheduleFormatError("Generated schedule is not in the expected array format.")

        entries = []
        for index, item in enumerate(parsed):
            if not isinstance(item, dict):
                raise ScheduleFormatError(f"Schedule entry {index} is not an object")

            entry = {field: str(item.get(field) or '').strip() for field in SCHEDULE_FIELDS}
            missing = [field for field in SCHEDULE_FIELDS if not entry[field]]
            if missing:
                self.logger.warning(f"Skipping schedule entry {index}, missing: {', '.join(missing)}")
                continue

            entry['id'] = uuid.uuid4().hex
            entries.append(entry)

        if not entries:
            raise ScheduleFormatError("Generated schedule has no complete entries")

        return entries
