"""
Orquestrador de fluxos de formulários clínicos para pacientes
"""

__version__ = "1.0.0"
