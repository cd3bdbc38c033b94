"""auth/ -- Password hashing, token signing and the registration/login workflow.

Layer rule: auth/ imports core/ and third-party libraries. It reaches kv/
only through the KeyValueStore protocol injected into AuthService.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
