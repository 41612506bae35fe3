"""
QR Code Generator Module - EduSched School Management System

This module builds and decodes attendance QR payloads and renders them as
PNG images. A payload identifies one student, one date and one subject;
the attendance manager decodes it when a teacher scans the code.

Payload formats:
- canonical: STUDENT|YYYY-MM-DD|SUBJECT
- legacy:    STUDENT-YYYY-MM-DD-SUBJECT
"""

import qrcode
import io
import base64
import re
import logging
from datetime import datetime, date
from typing import Optional, Dict, Any

PAYLOAD_DELIMITER = '|'

LEGACY_PAYLOAD_PATTERN = re.compile(
    r'^(?P<student_code>[^-|]+)-(?P<date>\d{4}-\d{2}-\d{2})-(?P<subject>.+)$'
)


class QRGenerator:
    """
    QR code helper for attendance payloads.
    Encodes, decodes and renders payloads with the qrcode library.
    """

    def __init__(self, box_size: int = 10, border: int = 4):
        self.logger = logging.getLogger(__name__)

        self.default_settings = {
            'version': 1,
            'error_correction': qrcode.constants.ERROR_CORRECT_M,
            'box_size': box_size,
            'border': border,
            'fill_color': 'black',
            'back_color': 'white'
        }

    def encode_payload(self, student_code: str, attendance_date, subject: str) -> str:
        """
        Build the canonical payload string.

        Args:
            student_code (str): Student user code
            attendance_date (date or str): Attendance date
            subject (str): Subject name or code

        Returns:
            str: Payload string

        Raises:
            ValueError: If a part is empty or contains the delimiter
        """
        student_code = str(student_code or '').strip()
        subject = str(subject or '').strip()

        if not student_code or not subject:
            raise ValueError("Student ID and subject are required")

        for part in (student_code, subject):
            if PAYLOAD_DELIMITER in part:
                raise ValueError(f"Payload parts may not contain '{PAYLOAD_DELIMITER}'")

        if isinstance(attendance_date, date):
            date_str = attendance_date.isoformat()
        else:
            date_str = self._parse_date(str(attendance_date)).isoformat()

        return PAYLOAD_DELIMITER.join([student_code, date_str, subject])

    def decode_payload(self, qr_data: str) -> Dict[str, Any]:
        """
        Decode a scanned payload.

        Args:
            qr_data (str): Raw scanned string

        Returns:
            Dict[str, Any]: {'valid': True, 'data': {...}} or an error result
        """
        text = str(qr_data or '').strip()

        if PAYLOAD_DELIMITER in text:
            parts = text.split(PAYLOAD_DELIMITER)
            if len(parts) != 3:
                return self._invalid('Invalid QR code format.')
            student_code, date_str, subject = (part.strip() for part in parts)
        else:
            match = LEGACY_PAYLOAD_PATTERN.match(text)
            if not match:
                return self._invalid('Invalid QR code format.')
            student_code = match.group('student_code').strip()
            date_str = match.group('date')
            subject = match.group('subject').strip()

        if not student_code or not subject:
            return self._invalid('Invalid QR code format.')

        try:
            parsed_date = self._parse_date(date_str)
        except ValueError:
            return self._invalid(f"Invalid date in QR code: {date_str}")

        return {
            'valid': True,
            'data': {
                'student_code': student_code,
                'date': parsed_date.isoformat(),
                'subject': subject
            }
        }

    def generate_qr_image(self, payload: str, custom_settings: Optional[dict] = None) -> Dict[str, Any]:
        """
        Render a payload as a PNG QR code.

        Args:
            payload (str): Data to encode
            custom_settings (dict): Overrides for the default settings

        Returns:
            Dict[str, Any]: base64 PNG and image size
        """
        settings = self.default_settings.copy()
        if custom_settings:
            settings.update(custom_settings)

        qr = qrcode.QRCode(
            version=settings['version'],
            error_correction=settings['error_correction'],
            box_size=settings['box_size'],
            border=settings['border']
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=settings['fill_color'],
            back_color=settings['back_color']
        )

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')

        return {
            'image_base64': base64.b64encode(buffer.getvalue()).decode(),
            'image_size': img.size
        }

    def generate_attendance_qr(self, student_code: str, subject: str,
                               attendance_date=None) -> Dict[str, Any]:
        """
        Generate a student's attendance QR code, for today unless a date is given.

        Returns:
            Dict[str, Any]: Generation result with payload and image
        """
        try:
            attendance_date = attendance_date or date.today()
            payload = self.encode_payload(student_code, attendance_date, subject)
            image = self.generate_qr_image(payload)

            self.logger.info(f"Attendance QR generated for {student_code} ({subject})")
            return {
                'success': True,
                'payload': payload,
                'image_base64': image['image_base64'],
                'image_size': image['image_size'],
                'filename': f"qr_{student_code}_{payload.split(PAYLOAD_DELIMITER)[1]}.png"
            }

        except ValueError as e:
            return {
                'success': False,
                'error': str(e),
                'error_type': 'validation_error'
            }

    @staticmethod
    def _parse_date(value: str) -> date:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()

    @staticmethod
    def _invalid(message: str) -> Dict[str, Any]:
        return {
            'valid': False,
            'error': message,
            'error_type': 'invalid_format'
        }
