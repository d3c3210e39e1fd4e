import binascii
import random
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
import structlog

from blockbreak.blackbox import (
    CBC_CHALLENGE_LINES,
    ROLLIN_SECRET,
    CbcPaddingOracle,
    EcbSuffixOracle,
    deterministic_key,
    random_key,
)
from blockbreak.errors import CipherError
from blockbreak.utils import b64_decode, b64_encode

from . import models

log = structlog.get_logger(
    processors=[
        structlog.processors.JSONRenderer(indent=2),
    ],
)

# Create the router for API endpoints
router = APIRouter()


def decode_field(name: str, value: str) -> bytes:
    try:
        return b64_decode(value)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"{name} is not valid base64: {e}")


def build_encrypted_response(oracle: EcbSuffixOracle, data: bytes) -> models.EncryptResponse:
    """ Build a response with the oracle's ciphertext for the given attacker bytes. """
    ciphertext = oracle.encrypt(data)
    log.info("encrypted", data_hex=data.hex(" "), data_len=len(data), ciphertext_len=len(ciphertext))
    return models.EncryptResponse(
        alg="AES-128-ECB",
        ciphertext_b64=b64_encode(ciphertext),
        ciphertext_hex=ciphertext.hex(),
    )


@router.post("/ecb/encrypt", response_model=models.EncryptResponse)
def ecb_encrypt(req: models.EncryptRequest, request: Request):
    """ Encrypt attacker bytes followed by a fixed secret under a fixed key. """
    data = decode_field("data_b64", req.data_b64)
    return build_encrypted_response(request.app.state.ecb_oracle, data)


@router.post("/ecb-prefix/encrypt", response_model=models.EncryptResponse)
def ecb_prefix_encrypt(req: models.EncryptRequest, request: Request):
    """ Same as /ecb/encrypt, with a random-length prefix fixed for this server run. """
    data = decode_field("data_b64", req.data_b64)
    return build_encrypted_response(request.app.state.ecb_prefix_oracle, data)


@router.get("/cbc/challenge", response_model=models.ChallengeResponse)
def cbc_challenge(request: Request):
    """ A random challenge line encrypted under a fresh IV. """
    line = request.app.state.rng.choice(CBC_CHALLENGE_LINES)
    iv, ciphertext = request.app.state.cbc_oracle.encrypt(line)
    return models.ChallengeResponse(
        alg="AES-128-CBC",
        iv_b64=b64_encode(iv),
        ciphertext_b64=b64_encode(ciphertext),
    )


@router.post("/cbc/validate", response_model=models.ValidateResponse)
def cbc_validate(req: models.ValidateRequest, request: Request):
    """ Decrypt the ciphertext and report only whether the padding was valid.
    This is the endpoint that is vulnerable to the padding oracle attack.
    """
    iv = decode_field("iv_b64", req.iv_b64)
    ciphertext = decode_field("ciphertext_b64", req.ciphertext_b64)

    try:
        valid = request.app.state.cbc_oracle.padding_valid(iv, ciphertext)
    except CipherError as e:
        log.warning("decryption failed", error=str(e), iv_len=len(iv), ciphertext_len=len(ciphertext))
        raise HTTPException(status_code=422, detail=f"{e}")

    if not valid:
        log.warning("invalid padding bytes", ciphertext_last=ciphertext[-16:].hex())
        raise HTTPException(status_code=400, detail="Invalid padding bytes.")
    return models.ValidateResponse(valid=True)


def create_app(seed: Optional[int] = None) -> FastAPI:
    """ Build the demo app. A seed makes the prefix, keys and challenges reproducible. """
    rng = random.Random(seed)
    app = FastAPI(title="Block Cipher Oracle Demo API")
    app.state.rng = rng
    app.state.ecb_oracle = EcbSuffixOracle(deterministic_key(), ROLLIN_SECRET)
    app.state.ecb_prefix_oracle = EcbSuffixOracle.with_random_prefix(
        ROLLIN_SECRET,
        key=rng.randbytes(16) if seed is not None else random_key(),
        rng=rng,
    )
    app.state.cbc_oracle = CbcPaddingOracle(
        key=rng.randbytes(16) if seed is not None else random_key(),
        rng=rng if seed is not None else None,
    )
    app.include_router(router, prefix="/api")
    log.info("app created", seeded=seed is not None)
    return app


app = create_app()
