from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from .services import RecallService
from .models import (
    AlgorithmStats,
    FeedbackRequest,
    GenerationPrompt,
    GenerationRequest,
    GenerationResult,
    ItemRequest,
    ItemState,
    MasteryResponse,
    ReviewRequest,
    VariantRecord,
    VariantRequest,
    VariantStats,
)
from typing import List, Dict

app = FastAPI(title="Recall Lab API")

# Singleton Service
service = RecallService()

app.add_middleware(
    CORSMiddleware,
    allow_origins=service.config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service() -> RecallService:
    return service


@app.on_event("startup")
def startup_event():
    service.load_data()


# --- Items ---

@app.post("/items", response_model=ItemState)
def add_item(request: ItemRequest, svc: RecallService = Depends(get_service)):
    return svc.add_item(request.question, request.answer)


@app.get("/items/due", response_model=List[ItemState])
def due_items(svc: RecallService = Depends(get_service)):
    return svc.due_items()


@app.get("/items/{item_id}", response_model=ItemState)
def get_item(item_id: str, svc: RecallService = Depends(get_service)):
    item = svc.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@app.delete("/items/{item_id}")
def delete_item(item_id: str, svc: RecallService = Depends(get_service)):
    if not svc.delete_item(item_id):
        raise HTTPException(status_code=404, detail="Item not found")
    return {"success": True}


@app.post("/items/{item_id}/review", response_model=ItemState)
def review_item(item_id: str, request: ReviewRequest, svc: RecallService = Depends(get_service)):
    item = svc.record_review(item_id, request.performance)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@app.get("/items/{item_id}/mastery", response_model=MasteryResponse)
def get_mastery(item_id: str, svc: RecallService = Depends(get_service)):
    mastery = svc.get_mastery(item_id)
    if mastery is None:
        raise HTTPException(status_code=404, detail="Item not found")
    level, label = mastery
    return MasteryResponse(level=level, label=label)


@app.post("/items/{item_id}/feedback", response_model=VariantRecord)
def record_feedback(item_id: str, request: FeedbackRequest, svc: RecallService = Depends(get_service)):
    variant = svc.record_feedback(item_id, request.feedback)
    if variant is None:
        raise HTTPException(status_code=404, detail="No generated content recorded for this item")
    return variant


@app.get("/algorithms/compare", response_model=Dict[str, AlgorithmStats])
def compare_algorithms(svc: RecallService = Depends(get_service)):
    return svc.compare_algorithms()


# --- Variants ---

@app.get("/variants", response_model=List[VariantRecord])
def list_variants(svc: RecallService = Depends(get_service)):
    return svc.list_variants()


@app.get("/variants/stats", response_model=List[VariantStats])
def get_variant_stats(svc: RecallService = Depends(get_service)):
    return svc.get_variant_stats()


@app.post("/variants/select")
def select_variant(svc: RecallService = Depends(get_service)):
    variant_id = svc.select_generation_variant()
    if variant_id is None:
        raise HTTPException(status_code=409, detail="No generation variants configured")
    return {"variant_id": variant_id}


@app.post("/variants", response_model=VariantRecord)
def add_variant(request: VariantRequest, svc: RecallService = Depends(get_service)):
    try:
        return svc.add_variant(request.name, request.template)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/variants/{variant_id}", response_model=VariantRecord)
def update_variant(variant_id: str, request: VariantRequest, svc: RecallService = Depends(get_service)):
    try:
        variant = svc.update_variant(variant_id, request.name, request.template)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if variant is None:
        raise HTTPException(status_code=404, detail="Variant not found")
    return variant


@app.delete("/variants/{variant_id}")
def delete_variant(variant_id: str, svc: RecallService = Depends(get_service)):
    if not svc.delete_variant(variant_id):
        raise HTTPException(status_code=404, detail="Variant not found")
    return {"success": True}


@app.post("/variants/{variant_id}/default")
def set_default_variant(variant_id: str, svc: RecallService = Depends(get_service)):
    if not svc.set_default_variant(variant_id):
        raise HTTPException(status_code=404, detail="Variant not found")
    return {"success": True}


# --- Generation ---

@app.post("/generation/prepare", response_model=GenerationPrompt)
def prepare_generation(request: GenerationRequest, svc: RecallService = Depends(get_service)):
    prompt = svc.prepare_generation(request.notes, request.difficulty)
    if prompt is None:
        raise HTTPException(status_code=409, detail="No generation variants configured")
    return prompt


@app.post("/generation/complete", response_model=List[ItemState])
def complete_generation(request: GenerationResult, svc: RecallService = Depends(get_service)):
    items = svc.complete_generation(request.variant_id, request.generated_text)
    if items is None:
        raise HTTPException(status_code=404, detail="Variant not found")
    return items
