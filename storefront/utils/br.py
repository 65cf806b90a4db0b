# storefront/utils/br.py
import re

# faixas de CEP por UF (simplificado)
CEP_RANGES: list[tuple[int, int, str]] = [
    (1000000, 19999999, "SP"),
    (20000000, 28999999, "RJ"),
    (29000000, 29999999, "ES"),
    (30000000, 39999999, "MG"),
    (40000000, 48999999, "BA"),
    (49000000, 49999999, "SE"),
    (50000000, 56999999, "PE"),
    (57000000, 57999999, "AL"),
    (58000000, 58999999, "PB"),
    (59000000, 59999999, "RN"),
    (60000000, 63999999, "CE"),
    (64000000, 64999999, "PI"),
    (65000000, 65999999, "MA"),
    (66000000, 68899999, "PA"),
    (68900000, 68999999, "AP"),
    (69000000, 69299999, "AM"),
    (69300000, 69399999, "RR"),
    (69400000, 69899999, "AM"),
    (69900000, 69999999, "AC"),
    (70000000, 72799999, "DF"),
    (72800000, 72999999, "GO"),
    (73000000, 73699999, "DF"),
    (73700000, 76799999, "GO"),
    (76800000, 76999999, "RO"),
    (77000000, 77999999, "TO"),
    (78000000, 78899999, "MT"),
    (79000000, 79999999, "MS"),
    (80000000, 87999999, "PR"),
    (88000000, 89999999, "SC"),
    (90000000, 99999999, "RS"),
]

def only_digits(s: str | None) -> str:
    return re.sub(r"\D+", "", s or "")

def normalize_cep(value: str | None) -> str:
    return only_digits(value)

def is_valid_cep(value: str | None) -> bool:
    return re.fullmatch(r"\d{8}", normalize_cep(value)) is not None

def format_cep(value: str | None) -> str:
    digits = normalize_cep(value)
    return f"{digits[:5]}-{digits[5:]}"

def state_from_cep(value: str | None) -> str | None:
    digits = normalize_cep(value)
    if not digits:
        return None
    num = int(digits)
    for lo, hi, uf in CEP_RANGES:
        if lo <= num <= hi:
            return uf
    return None
