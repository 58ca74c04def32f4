from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional
from assessment.api.deps import get_services
from assessment.core.auth import require_roles, TokenData
from assessment.models.schemas import PoolConfig, QuestionPool
from assessment.services.container import Services

router = APIRouter()

class PoolCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    config: PoolConfig = Field(default_factory=PoolConfig)
    question_ids: List[int] = Field(default_factory=list)
    is_default: bool = False
    is_active: bool = True

@router.post("", response_model=QuestionPool, status_code=201)
def create_pool(payload: PoolCreate, user: TokenData = Depends(require_roles("admin")),
                services: Services = Depends(get_services)):
    return services.store.create_pool(
        name=payload.name, config=payload.config, question_ids=payload.question_ids,
        description=payload.description, is_default=payload.is_default,
        is_active=payload.is_active, created_by=user.sub,
    )

@router.get("", response_model=List[QuestionPool], dependencies=[Depends(require_roles("admin"))])
def list_pools(services: Services = Depends(get_services)):
    return services.store.list_pools()

@router.post("/{pool_id}/default", response_model=QuestionPool, dependencies=[Depends(require_roles("admin"))])
def set_default_pool(pool_id: int, services: Services = Depends(get_services)):
    return services.store.set_default_pool(pool_id)
