"""
Contractor Delivery Portal
SQLAlchemy handle shared by every model module.

Each logical collection of the document store is one table:
users, projects (+ project_members), deliveries (+ checklist items,
comments, attachments), safety_docs and notifications.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
