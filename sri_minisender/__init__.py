"""
Flujo de emisión: clave de acceso, firma, guardrails, recepción y autorización.
"""
