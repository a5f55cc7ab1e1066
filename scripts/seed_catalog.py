"""
Seed de catálogos clínicos: estados (diagnóstico, tratamiento, pieza)
y motivos de consulta.

Uso:
    python scripts/seed_catalog.py

Hace upsert: estados por (code, type), motivos por título.
"""

import asyncio

from sqlalchemy import select

from app.database import async_session_factory, engine
from app.models.catalog import Complaint, Status, StatusType

# (code, title, color)
DIAGNOSES = [
    ("K02", "Caries dental", "#d32f2f"),
    ("K04", "Enfermedad de la pulpa", "#c2185b"),
    ("K05", "Gingivitis y periodontitis", "#7b1fa2"),
    ("K08.1", "Pérdida de dientes", "#455a64"),
    ("S02.5", "Fractura de diente", "#f57c00"),
]

TREATMENTS = [
    ("T-OBT", "Obturación (resina)", "#1976d2"),
    ("T-END", "Endodoncia", "#0288d1"),
    ("T-EXO", "Exodoncia", "#5d4037"),
    ("T-PRF", "Profilaxis", "#388e3c"),
    ("T-COR", "Corona", "#fbc02d"),
]

TOOTH_STATES = [
    ("HEALTHY", "Sano", "#ffffff"),
    ("CARIES", "Caries", "#d32f2f"),
    ("FILLED", "Obturado", "#1976d2"),
    ("CROWN", "Corona", "#fbc02d"),
    ("MISSING", "Ausente", "#9e9e9e"),
    ("IMPLANT", "Implante", "#607d8b"),
    ("ROOT_CANAL", "Conducto tratado", "#0288d1"),
]

# (title, category)
COMPLAINTS = [
    ("Dolor dental", "pain"),
    ("Sensibilidad al frío / calor", "pain"),
    ("Sangrado de encías", "gum"),
    ("Control de rutina", "checkup"),
    ("Limpieza", "hygiene"),
    ("Estética / blanqueamiento", "cosmetic"),
    ("Diente fracturado", "trauma"),
]


async def seed_catalog() -> None:
    async with async_session_factory() as db:
        created = 0
        updated = 0

        for status_type, rows in (
            (StatusType.DIAGNOSIS, DIAGNOSES),
            (StatusType.TREATMENT, TREATMENTS),
            (StatusType.TOOTH, TOOTH_STATES),
        ):
            for code, title, color in rows:
                result = await db.execute(
                    select(Status).where(Status.code == code, Status.type == status_type)
                )
                existing = result.scalar_one_or_none()
                if existing:
                    existing.title = title
                    existing.color = color
                    updated += 1
                else:
                    db.add(Status(code=code, title=title, type=status_type, color=color))
                    created += 1

        for title, category in COMPLAINTS:
            result = await db.execute(select(Complaint).where(Complaint.title == title))
            existing = result.scalar_one_or_none()
            if existing:
                existing.category = category
                updated += 1
            else:
                db.add(Complaint(title=title, category=category))
                created += 1

        await db.commit()
        print(f"Seed completado: {created} creados, {updated} actualizados.")

    await engine.dispose()


def main():
    asyncio.run(seed_catalog())


if __name__ == "__main__":
    main()
