# scripts/fix_db.py
import sys
import os
from sqlalchemy import text

# Colonnes ajoutées après le premier déploiement : (table, colonne, type)
COLUMNS_TO_ADD = [
    ("tenders", "last_seen_at", "TIMESTAMP"),
    ("tenders", "reference", "VARCHAR(255)"),
    ("tenders", "source", "VARCHAR(255)"),
    ("tenders", "affirmative_action", "JSON DEFAULT '{\"type\": \"none\", \"percentage\": 0, \"details\": \"\"}'"),
    ("scraping_logs", "parent_log_id", "INTEGER REFERENCES scraping_logs(id) ON DELETE SET NULL"),
    ("scraping_logs", "details", "TEXT"),
    ("scraping_logs", "completed_at", "TIMESTAMP"),
    ("scraping_jobs", "priority", "INTEGER DEFAULT 0"),
]


def migrate():
    from tender_ingest.database import engine

    print("🚀 Démarrage de la migration de la base de données...")

    with engine.connect() as conn:
        for table, column_name, column_type in COLUMNS_TO_ADD:
            print(f"⌛ Tentative d'ajout de la colonne '{table}.{column_name}'...")
            try:
                # PostgreSQL ALTER TABLE ADD COLUMN IF NOT EXISTS (PG 9.6+)
                query = text(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column_name} {column_type};")
                conn.execute(query)
                conn.commit()
                print(f"✅ Colonne '{table}.{column_name}' ajoutée ou déjà présente.")
            except Exception as e:
                print(f"❌ Erreur lors de l'ajout de '{table}.{column_name}': {e}")
                conn.rollback()

    print("✨ Migration terminée !")


if __name__ == "__main__":
    # S'assurer que le chemin d'import fonctionne
    sys.path.append(os.getcwd())
    migrate()
