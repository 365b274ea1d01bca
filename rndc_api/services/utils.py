from __future__ import annotations

from datetime import datetime, date
import re


def norm_str(v):
    if v is None:
        return None
    s = str(v).strip()
    return s if s != "" else None


def to_doc(v):
    """Número de documento/NIT tal como lo espera el RNDC (Excel suele traerlo como 900123.0)."""
    if v is None:
        return None
    if isinstance(v, bool):
        return str(v)
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float):
        if v.is_integer():
            return str(int(v))
        return norm_str(v)
    s = str(v).strip()
    if s == "":
        return None
    if re.fullmatch(r"\d+\.0+", s):
        return s.split(".")[0]
    return s


def norm_placa(v) -> str | None:
    s = norm_str(v)
    if s is None:
        return None
    return re.sub(r"\s+", "", s).upper()


_FORMATOS_FECHA = ("%d/%m/%Y", "%Y-%m-%d", "%Y/%m/%d", "%d-%m-%Y")


def to_date(v):
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    s = str(v).strip()
    # "2025/01/31 00:00:00" -> solo la fecha
    s = s.split(" ")[0].split("T")[0]
    for fmt in _FORMATOS_FECHA:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def primer_valor(doc: dict, *llaves: str):
    """Primer valor no vacío entre varias llaves posibles (el RNDC no es consistente)."""
    for k in llaves:
        v = doc.get(k) if doc else None
        if isinstance(v, str):
            if v.strip():
                return v.strip()
            continue
        if v not in (None, "") and not isinstance(v, (dict, list)):
            return v
    return None
