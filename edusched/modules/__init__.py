"""
EduSched manager modules.

Each module wraps one concern (database, authentication, timetable
generation, schedule storage, QR codes, attendance, library, notifications,
reports) behind a manager class that takes the shared DatabaseManager.
"""
