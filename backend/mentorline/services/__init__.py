"""
Service layer for Mentorline.

Services own business rules, transactions and the scheduling locks; routes
and Celery tasks only translate inputs and outputs.
"""
