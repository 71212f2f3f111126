"""HMAC-SHA256 signatures shared with the PSP.

Both directions use base64(HMAC-SHA256(merchant_key, message)):
  callback:   message = merchant_oid + merchant_salt + status + total_amount
  init token: message = merchant_id + user_ip + merchant_oid + email
                        + payment_amount + user_basket + no_installment
                        + max_installment + currency + test_mode + merchant_salt
"""
import base64
import hashlib
import hmac


def _sign(merchant_key: str, message: str) -> str:
    digest = hmac.new(merchant_key.encode(), message.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def callback_signature(
    merchant_key: str, merchant_salt: str, merchant_oid: str, status: str, total_amount: str
) -> str:
    return _sign(merchant_key, f"{merchant_oid}{merchant_salt}{status}{total_amount}")


def verify_callback_signature(
    merchant_key: str,
    merchant_salt: str,
    merchant_oid: str,
    status: str,
    total_amount: str,
    supplied: str,
) -> bool:
    if not merchant_key or not supplied:
        return False
    expected = callback_signature(merchant_key, merchant_salt, merchant_oid, status, total_amount)
    return hmac.compare_digest(expected.encode(), supplied.encode())


def payment_token(
    merchant_key: str,
    merchant_salt: str,
    *,
    merchant_id: str,
    user_ip: str,
    merchant_oid: str,
    email: str,
    payment_amount: int,
    user_basket: str,
    no_installment: int,
    max_installment: int,
    currency: str,
    test_mode: int,
) -> str:
    message = (
        f"{merchant_id}{user_ip}{merchant_oid}{email}{payment_amount}{user_basket}"
        f"{no_installment}{max_installment}{currency}{test_mode}{merchant_salt}"
    )
    return _sign(merchant_key, message)
