"""Thresholds and keyword tables for the cultural events pipeline."""
from __future__ import annotations

# Deduplication
DUPLICATE_SCORE_THRESHOLD = 60
DUPLICATE_CANDIDATE_LIMIT = 50
DUPLICATE_DATE_WINDOW_DAYS = 1
DEFAULT_SOURCE_RELIABILITY = 50

# Pipeline source
PIPELINE_SOURCE_NAME = "external-pipeline"
PIPELINE_SOURCE_TYPE = "WEB_DISCOVERY"
PIPELINE_SOURCE_RELIABILITY = 70

STALE_RUN_MESSAGE = "Pipeline timed out (stale RUNNING entry cleaned up)"

# Checked in order; the first category with a matching keyword wins.
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "CINE": ["cine", "pelicula", "film", "cortometraje", "documental", "cinematografico"],
    "TEATRO": ["teatro", "obra", "comedia", "drama", "monologo", "escena", "escenico"],
    "MUSICA": [
        "musica", "concierto", "recital", "banda", "show", "dj",
        "festival musical", "jazz", "rock", "tango", "folklore",
    ],
    "EXPOSICIONES": ["exposicion", "muestra", "galeria", "arte", "instalacion", "fotografia"],
    "FESTIVALES": ["festival", "fiesta", "carnaval", "celebracion"],
    "MERCADOS": ["feria", "mercado", "bazar", "diseno", "artesanal", "emprendedores"],
    "PASEOS": ["paseo", "caminata", "tour", "recorrido", "visita guiada"],
    "EXCURSIONES": ["excursion", "trekking", "aventura", "senderismo", "camping"],
    "TALLERES": ["taller", "workshop", "curso", "clase", "capacitacion", "seminario"],
    "DANZA": ["danza", "baile", "ballet", "contemporanea", "folclore"],
    "LITERATURA": ["literatura", "libro", "lectura", "poeta", "escritor", "feria del libro"],
    "GASTRONOMIA": ["gastronomia", "food", "cocina", "degustacion", "vino", "cerveza artesanal"],
    "DEPORTES": ["deporte", "maraton", "carrera", "torneo", "campeonato"],
    "INFANTIL": ["infantil", "ninos", "chicos", "familiar", "kids"],
    "OTRO": [],
}

# Closed tag set the curator picks from.
CULTURAL_EVENT_TAGS = (
    "CINE",
    "TEATRO",
    "MUSICA",
    "DANZA",
    "EXPOSICION",
    "TALLER",
    "FERIA",
    "FESTIVAL",
    "INFANTIL",
    "OTRO",
)

INDEPENDENCE_VALUES = ("commercial", "independent", "mixed")
