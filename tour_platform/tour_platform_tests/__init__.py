"""
Tests for the tour platform auth service.

Covers signup/login and session tokens, the `protect` and `restrict_to`
gates, the password reset flow (including notifier failure), password
updates and review routes.
"""
