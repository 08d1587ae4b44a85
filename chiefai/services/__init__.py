"""
Services - collaborator interfaces, timezone resolution and the meeting pipeline
"""
