# scripts/init_db.py
import sys
import os

# Ajouter le dossier parent au path pour importer 'tender_ingest'
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tender_ingest.database import init_db
from tender_ingest.config import get_settings
from tender_ingest.services.sources import SOURCES


def main():
    print("🚀 Initialisation de la base de données...")
    settings = get_settings()
    print(f"📡 Connexion à : {settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}/{settings.POSTGRES_DB}")

    try:
        init_db()
        print("✅ Base de données initialisée avec succès !")
    except Exception as e:
        print(f"❌ Erreur lors de l'initialisation : {e}")
        sys.exit(1)

    print("📚 Sources configurées :")
    for root in SOURCES:
        for source in root.walk():
            print(f"   - {source.name} ({source.strategy}) {source.base_url}")


if __name__ == "__main__":
    main()
