"""Unit tests: one component at a time, collaborators mocked"""
