"""auth/ -- Credential core for the Grievance Portal.

Leaves: passwords, otp, reset_tokens, tokens (no knowledge of each other).
Composition: flows.CredentialFlows, on top of store.UserStore and mailer.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
