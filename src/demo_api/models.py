from pydantic import BaseModel


class EncryptRequest(BaseModel):
    data_b64: str


class EncryptResponse(BaseModel):
    alg: str
    ciphertext_b64: str
    ciphertext_hex: str


class ChallengeResponse(BaseModel):
    alg: str
    iv_b64: str
    ciphertext_b64: str


class ValidateRequest(BaseModel):
    iv_b64: str
    ciphertext_b64: str


class ValidateResponse(BaseModel):
    valid: bool
