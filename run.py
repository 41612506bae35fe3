#!/usr/bin/env python3
"""
EduSched - Main Application Entry Point
"""

from edusched import create_app

app = create_app()

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
