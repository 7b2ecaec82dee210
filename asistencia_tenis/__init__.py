"""Sistema de asistencia de clases de tenis: envío con tolerancia a cortes de red."""

__version__ = "1.0.0"
