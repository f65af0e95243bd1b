"""Core Business Logic Module

Account provisioning and the bulk import pipeline, independent of Flask.

Architecture:
    - bulk/: parse, validate, dedupe, orchestrate and report (pure Python)
    - keycloak/: Keycloak Admin REST client
    - provisioning_service: role guard and error mapping over keycloak/
    - bulk_service: wires bulk/ to provisioning_service and the audit log
"""
