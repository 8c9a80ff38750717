"""
Per-entity importers, selected by EntityType.
"""

from models.imports import EntityType
from parsers.entities.base import EntityImporter, RowReader, field_label
from parsers.entities.transactions import TransactionImporter
from parsers.entities.leads import LeadImporter, CONTACT_SLOT_SYNONYMS
from parsers.entities.children import (
    ChildEntityImporter,
    ContactImporter,
    OpportunityImporter,
    TaskImporter,
)

IMPORTERS: dict[EntityType, type[EntityImporter]] = {
    EntityType.TRANSACTIONS: TransactionImporter,
    EntityType.LEADS: LeadImporter,
    EntityType.CONTACTS: ContactImporter,
    EntityType.OPPORTUNITIES: OpportunityImporter,
    EntityType.TASKS: TaskImporter,
}


def get_entity_importer(entity_type: EntityType) -> EntityImporter:
    """Importer variant for an entity type."""
    return IMPORTERS[EntityType(entity_type)]()


__all__ = [
    "EntityImporter",
    "RowReader",
    "field_label",
    "TransactionImporter",
    "LeadImporter",
    "CONTACT_SLOT_SYNONYMS",
    "ChildEntityImporter",
    "ContactImporter",
    "OpportunityImporter",
    "TaskImporter",
    "IMPORTERS",
    "get_entity_importer",
]
