"""Prompt template for the DB advisor.

The answer schema keys are French because the advisory document's wire keys
are; keep the two in sync with `schemas.advisor`.
"""

from __future__ import annotations

from schemas.advisor import DbContext


ADVISOR_INTRO = (
    "Tu es un expert en gestion de bases de données. Analyse le contexte suivant "
    "et fournis des conseils structurés en JSON.\n\n"
)

RESPONSE_SCHEMA = """{
  "diagnostic": {
    "etat_actuel": "Description de l'état actuel",
    "hypotheses": ["Hypothèse 1"],
    "verifications_prealables": ["Vérification 1"]
  },
  "actions_recommandees": [
    {
      "action": "Nom de l'action",
      "details": "Description détaillée",
      "priorite": "haute"
    }
  ],
  "risques": [
    {
      "risque": "Nom du risque",
      "cause": "Cause",
      "impact": "Impact",
      "mitigation": "Mitigation"
    }
  ],
  "sql_suggere": [
    {
      "description": "Description",
      "requete": "SELECT ..."
    }
  ],
  "niveau_confiance": 0.85,
  "notes_complementaires": {
    "outils_recommandes": ["Outil 1"],
    "bonnes_pratiques": ["Pratique 1"]
  }
}"""


def build_prompt(context: DbContext) -> str:
    """Render the database context and the required answer schema."""
    lines: list[str] = [ADVISOR_INTRO.rstrip("\n"), ""]
    lines.append(f"DSN: {context.dsn}")
    lines.append(f"Nombre de tables: {len(context.tables)}")

    if context.tables:
        lines.append("")
        lines.append("Tables disponibles:")
        lines.extend(f"- {table}" for table in context.tables)
    else:
        lines.append("")
        lines.append("Aucune table détectée dans cette base de données.")

    if context.stats is not None:
        lines.append("")
        lines.append(
            f"Statistiques: {context.stats.table_count} tables, "
            f"{context.stats.index_count} index"
        )

    if context.schemas:
        lines.append("")
        lines.append("Schémas des tables:")
        for table, columns in context.schemas.items():
            lines.append(f"- Table {table}: {len(columns)} colonnes")
            for column in columns:
                flags = []
                if column.is_primary_key:
                    flags.append("PK")
                if column.is_foreign_key:
                    flags.append("FK")
                if column.nullable is False:
                    flags.append("NOT NULL")
                suffix = f" [{', '.join(flags)}]" if flags else ""
                lines.append(f"  * {column.name} ({column.data_type}){suffix}")

    if any(context.indexes.values()):
        lines.append("")
        lines.append("Index existants:")
        for table, indexes in context.indexes.items():
            for index in indexes:
                unique = " (unique)" if index.unique else ""
                lines.append(
                    f"- Table {table}: Index {index.name} sur "
                    f"{', '.join(index.columns)}{unique}"
                )

    if context.relations:
        lines.append("")
        lines.append("Relations:")
        for rel in context.relations:
            lines.append(
                f"- {rel.from_table} ({rel.from_column}) -> "
                f"{rel.to_table} ({rel.to_column})"
            )

    if context.sql_query:
        lines.append("")
        lines.append("Requête SQL à analyser:")
        lines.append(context.sql_query)

    lines.append("")
    lines.append(
        "IMPORTANT: Réponds UNIQUEMENT avec du JSON valide, sans texte avant ou "
        "après. Structure JSON requise:"
    )
    lines.append(RESPONSE_SCHEMA)
    return "\n".join(lines)
