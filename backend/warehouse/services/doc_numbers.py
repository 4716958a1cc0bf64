"""เลขที่เอกสาร รูปแบบ {prefix}{YY}{MM}-{เลขลำดับ} เช่น PO2410-000015"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.models.doc_sequence import DocSequence

# doc_type: (prefix, pad_length)
DEFAULT_SEQUENCES = {
    "MOVEMENT": ("MOV", 6),
    "PR": ("PR", 6),
    "PO": ("PO", 6),
    "GRN": ("GRN", 6),
}


def format_doc_number(prefix: str, number: int, pad_length: int, when: datetime) -> str:
    return f"{prefix}{when:%y%m}-{number:0{pad_length}d}"


async def ensure_doc_sequences(db: AsyncSession) -> int:
    """สร้างตัวนับที่ยังไม่มี คืนจำนวนที่สร้างใหม่"""
    result = await db.execute(select(DocSequence.doc_type))
    existing = set(result.scalars().all())
    created = 0
    for doc_type, (prefix, pad_length) in DEFAULT_SEQUENCES.items():
        if doc_type not in existing:
            db.add(DocSequence(doc_type=doc_type, prefix=prefix, current_no=0, pad_length=pad_length))
            created += 1
    if created:
        await db.flush()
    return created


async def generate_doc_number(
    db: AsyncSession,
    doc_type: str,
    when: Optional[datetime] = None) -> str:
    """เพิ่มตัวนับของประเภทเอกสารแล้วคืนเลขที่ใหม่"""
    result = await db.execute(
        update(DocSequence)
        .where(DocSequence.doc_type == doc_type)
        .values(current_no=DocSequence.current_no + 1)
    )
    if result.rowcount == 0:
        prefix, pad_length = DEFAULT_SEQUENCES.get(doc_type, (doc_type[:3], 6))
        db.add(DocSequence(doc_type=doc_type, prefix=prefix, current_no=1, pad_length=pad_length))
        await db.flush()

    seq_result = await db.execute(
        select(DocSequence)
        .where(DocSequence.doc_type == doc_type)
        .execution_options(populate_existing=True)
    )
    seq = seq_result.scalar_one()
    return format_doc_number(seq.prefix, seq.current_no, seq.pad_length, when or datetime.now())
