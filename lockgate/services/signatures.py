"""
Challenge signature validation

ethereum_profile:  EIP-191 personal_sign, recovered signer must be the claimed address
universal_profile: ERC-1271 isValidSignature on the profile contract; an
                   address with no code is treated as a plain key (EIP-191)
"""
import logging

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import decode_hex, keccak

from lockgate.models.domain import CategoryType
from lockgate.services.chain_client import ChainLookupError, ContractReverted, TokenReader
from lockgate.services.errors import ExternalServiceUnavailable, InvalidSignature

logger = logging.getLogger(__name__)


def eip191_hash(message: str) -> bytes:
    """keccak256("\\x19Ethereum Signed Message:\\n" + len + message)"""
    body = message.encode("utf-8")
    return keccak(b"\x19Ethereum Signed Message:\n" + str(len(body)).encode() + body)


def signature_bytes(signature: str) -> bytes:
    try:
        raw = decode_hex(signature)
    except (ValueError, TypeError):
        raise InvalidSignature("Signature is not valid hex")
    if not raw:
        raise InvalidSignature("Signature is empty")
    return raw


def recover_signer(message: str, signature: str) -> str:
    """Lower-cased address that produced an EIP-191 signature over message"""
    raw = signature_bytes(signature)
    try:
        signer = Account.recover_message(encode_defunct(text=message), signature=raw)
    except Exception as e:
        logger.info(f"Signature recovery failed: {e}")
        raise InvalidSignature()
    return signer.lower()


class SignatureValidator:
    """Checks a challenge signature against the claimed identity"""

    def __init__(self, token_readers: dict):
        # CategoryType -> TokenReader for the network's ERC-1271 calls
        self.token_readers = token_readers

    async def validate(self, category_type: CategoryType, claimed_identity: str,
                       message: str, signature: str) -> None:
        """
        Raises:
            InvalidSignature: signature does not belong to claimed_identity
            ExternalServiceUnavailable: contract account could not be queried
        """
        claimed = claimed_identity.lower()

        if category_type == CategoryType.UNIVERSAL_PROFILE:
            reader: TokenReader = self.token_readers[category_type]
            try:
                code = await reader.rpc.get_code(claimed)
                if code:
                    valid = await reader.is_valid_signature(
                        claimed, eip191_hash(message), signature_bytes(signature)
                    )
                    if not valid:
                        raise InvalidSignature()
                    logger.debug(f"ERC-1271 signature accepted for {claimed}")
                    return
            except ContractReverted as e:
                logger.info(f"isValidSignature reverted for {claimed}: {e}")
                raise InvalidSignature()
            except ChainLookupError as e:
                logger.error(f"Could not check contract signature for {claimed}: {e}")
                raise ExternalServiceUnavailable()

        if recover_signer(message, signature) != claimed:
            raise InvalidSignature()
