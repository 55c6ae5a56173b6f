"""Authentication module for Salesforce OAuth 2.0"""
from .oauth import Credential, Creds, authenticate, revoke

__all__ = ['Credential', 'Creds', 'authenticate', 'revoke']
