from pydantic import BaseModel

from clinic.models.treatment import TreatmentCategory


class CategoryCount(BaseModel):
    category: TreatmentCategory
    treatment_count: int
