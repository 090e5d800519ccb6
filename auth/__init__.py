"""auth/ -- Identity, delegation and authorization package for PetKeeper.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or pets/; pet lookups reach auth/permissions.py
through the Protocols declared there. api/ and pets/ import from auth/, not
the other way around.
"""
