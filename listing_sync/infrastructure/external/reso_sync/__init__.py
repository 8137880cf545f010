"""
Motor de sincronización incremental: feed RESO (OData) -> base relacional.

Se ejecuta como job (scheduler, CLI o endpoint), nunca dentro de un request
de lectura.

Objetivos de diseño:
- Idempotencia: UPSERT por clave primaria, re-ejecutable N veces.
- Incremental: cursor (timestamp, clave) por entidad, monotónico.
- Tolerancia: errores aislados por registro, chunk o página; nada aborta la corrida.
- Esquema: columnas declaradas por tabla, validadas contra la base con circuit breaker.
"""
