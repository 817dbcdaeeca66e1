"""auth/ -- Authentication and authorization package for FleetAdmin.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and the
fleet/ domain models. It does NOT import from api/ or cache/.
api/ imports from auth/, not the other way around.
"""
