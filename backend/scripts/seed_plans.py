"""
Seed Plans: cria ou atualiza os planos de assinatura dos profissionais.

Uso:
    cd backend
    python -m scripts.seed_plans
"""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal
from app.models.plan import Plan

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

PLANS: list[dict] = [
    {
        "name": "free",
        "display_name": "Gratuito",
        "description": "Perfil básico no marketplace.",
        "price_cents": 0,
        "is_free": True,
        "features": ["Perfil público", "Até 3 serviços cadastrados"],
        "sort_order": 0,
    },
    {
        "name": "50",
        "display_name": "Essencial",
        "description": "Para quem está começando a atender pela plataforma.",
        "price_cents": 5000,
        "is_free": False,
        "features": ["Perfil em destaque", "Serviços ilimitados", "Cupons para pacientes"],
        "sort_order": 1,
    },
    {
        "name": "100",
        "display_name": "Profissional",
        "description": "Mais visibilidade nas buscas.",
        "price_cents": 10000,
        "is_free": False,
        "features": ["Tudo do Essencial", "Prioridade nas buscas", "Relatórios de visitas"],
        "sort_order": 2,
    },
    {
        "name": "500",
        "display_name": "Clínica",
        "description": "Para clínicas com vários profissionais.",
        "price_cents": 50000,
        "is_free": False,
        "features": ["Tudo do Profissional", "Multiplos profissionais", "Suporte dedicado"],
        "sort_order": 3,
    },
]


async def upsert_plan(db: AsyncSession, data: dict) -> Plan:
    """Create the plan by ``name`` or overwrite its fields."""
    plan = (await db.execute(select(Plan).where(Plan.name == data["name"]))).scalar_one_or_none()
    if plan is None:
        plan = Plan(**data)
        db.add(plan)
        logger.info("Plano criado: %s", data["name"])
    else:
        for field, value in data.items():
            setattr(plan, field, value)
        logger.info("Plano atualizado: %s", data["name"])
    return plan


async def seed() -> None:
    async with AsyncSessionLocal() as db:
        for data in PLANS:
            await upsert_plan(db, data)
        await db.commit()
    logger.info("%d planos sincronizados", len(PLANS))


if __name__ == "__main__":
    asyncio.run(seed())
