import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from . import crypto, hashing, keymanager, library
from .anchor import AnchorBinder, derive_key, store_from_settings
from .config import Settings
from .errors import CreditAnchorError, InvalidParameters
from .models import AnchorRecord, KeyEnvelope
from .retriever import Retriever

logger = logging.getLogger("creditanchor.cli")


def _read_json_arg(value: str) -> str:
    """Inline JSON, or a path to a file holding it."""
    path = Path(value)
    if not value.lstrip().startswith("{") and path.is_file():
        return path.read_text()
    return value


def _print_payload(payload: bytes) -> None:
    try:
        print(payload.decode("utf-8"))
    except UnicodeDecodeError:
        sys.stdout.flush()
        sys.stdout.buffer.write(payload)
        return
    summary = library.score_summary(payload)
    if summary:
        print(summary)


def cmd_encrypt(args, settings: Settings):
    if args.input:
        payload = Path(args.input).read_bytes()
    else:
        meta = library.build_score_metadata(args.name, args.score)
        payload = json.dumps(meta, separators=(",", ":")).encode("utf-8")
    envelope, key = library.encrypt(payload)
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    data = envelope.to_bytes()
    out.write_bytes(data)
    print(f"Envelope written to {out}")
    print(f"KEY_B64: {crypto.b64e(key)}")
    print(f"ENC_HASH: {hashing.digest_hex(data)}")


def cmd_decrypt(args, settings: Settings):
    key = crypto.b64d(args.key_b64, "key")
    with Retriever.from_settings(settings) as retriever:
        envelope = retriever.fetch(args.locator, expected_hash=args.enc_hash)
    _print_payload(library.decrypt(envelope, key))


def cmd_wrap_key(args, settings: Settings):
    raw_key = crypto.b64d(args.key_b64, "key")
    if args.expect_address:
        signer = library.recover_signer_address(args.message, args.signature)
        if signer.lower() != args.expect_address.lower():
            raise InvalidParameters(f"approval was signed by {signer}, not {args.expect_address}")
    key_envelope = library.wrap(raw_key, args.message, args.signature)
    print(key_envelope.to_json())


def cmd_unwrap_key(args, settings: Settings):
    key_envelope = KeyEnvelope.from_json(_read_json_arg(args.key_envelope))
    raw_key = library.unwrap(key_envelope, args.private_key)
    print(f"KEY_B64: {crypto.b64e(raw_key)}")


def cmd_hash_envelope(args, settings: Settings):
    print(f"ENC_HASH: {hashing.digest_hex(Path(args.path).read_bytes())}")


def cmd_derive_anchor_key(args, settings: Settings):
    print(crypto.hexe(derive_key(args.nft_address, args.token_id)))


def cmd_set_anchor(args, settings: Settings):
    record = AnchorRecord(
        locator=args.locator,
        content_hash=hashing.parse_hash(args.enc_hash),
        piece_locator=args.piece_cid,
        deal_reference=args.deal_id,
    )
    with store_from_settings(settings) as store:
        binder = AnchorBinder(store)
        key = binder.derive_key(args.nft_address, args.token_id)
        tx_ref = store.set(key, record)
    if tx_ref:
        print(f"Anchored tx: {tx_ref}")
    print(f"Key: {crypto.hexe(key)}")


def cmd_get_anchor(args, settings: Settings):
    with store_from_settings(settings) as store:
        record = AnchorBinder(store).lookup(args.nft_address, args.token_id)
    if record is None:
        raise InvalidParameters(f"no anchor record for {args.nft_address} #{args.token_id}")
    print(json.dumps(record.to_dict(), indent=2))


def cmd_open_anchor(args, settings: Settings):
    key = crypto.b64d(args.key_b64, "key")
    with store_from_settings(settings) as store, Retriever.from_settings(settings) as retriever:
        payload = library.open_anchor(AnchorBinder(store), retriever, args.nft_address, args.token_id, key)
    _print_payload(payload)


def cmd_generate_keys(args, settings: Settings):
    data = keymanager.generate_dummy_account(args.name, base_dir=settings.keys_dir)
    print(f"Generated account {data['address']} for {data['name']} in {settings.keys_dir}")


def cmd_sign_approval(args, settings: Settings):
    message = args.message or library.approval_message(args.token_id)
    print(keymanager.sign_approval(args.name, message, base_dir=settings.keys_dir))


def build_parser():
    parser = argparse.ArgumentParser(prog="creditanchor", description="Encrypted score envelopes anchored to tokens")
    parser.add_argument("--keys-dir", help="Directory for local account files")
    parser.add_argument("--gateway", action="append", dest="gateways", help="Gateway base URL (repeatable, tried in order)")
    parser.add_argument("--registry-url", help="Anchor registry service URL (instead of the anchor contract)")
    parser.add_argument("--log-level", help="Logging level (default from CREDITANCHOR_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_enc = sub.add_parser("encrypt", help="Encrypt a payload into an envelope file")
    p_enc.add_argument("--input", help="Payload file; omit to encrypt score metadata")
    p_enc.add_argument("--name", default="Alice Demo", help="Name for score metadata")
    p_enc.add_argument("--score", type=int, default=735, help="Score for score metadata")
    p_enc.add_argument("--output", default="out/zkredit.enc.json", help="Where to write the envelope")
    p_enc.set_defaults(func=cmd_encrypt)

    p_dec = sub.add_parser("decrypt", help="Fetch an envelope by locator and decrypt it")
    p_dec.add_argument("locator", help="CID or CID/path")
    p_dec.add_argument("key_b64", help="Envelope key, base64")
    p_dec.add_argument("--enc-hash", help="Expected keccak256 of the envelope bytes")
    p_dec.set_defaults(func=cmd_decrypt)

    p_wrap = sub.add_parser("wrap-key", help="Wrap a key for whoever signed the approval message")
    p_wrap.add_argument("key_b64", help="Envelope key, base64")
    p_wrap.add_argument("message", help="Approval message that was signed")
    p_wrap.add_argument("signature", help="personal_sign signature, hex")
    p_wrap.add_argument("--expect-address", help="Refuse unless the signer is this address")
    p_wrap.set_defaults(func=cmd_wrap_key)

    p_unwrap = sub.add_parser("unwrap-key", help="Open a key envelope with a private key")
    p_unwrap.add_argument("key_envelope", help="Key envelope JSON or path to it")
    p_unwrap.add_argument("private_key", help="Recipient private key, hex")
    p_unwrap.set_defaults(func=cmd_unwrap_key)

    p_hash = sub.add_parser("hash-envelope", help="keccak256 of an envelope file")
    p_hash.add_argument("path", nargs="?", default="out/zkredit.enc.json")
    p_hash.set_defaults(func=cmd_hash_envelope)

    p_key = sub.add_parser("derive-anchor-key", help="Anchor key for an NFT contract and token id")
    p_key.add_argument("nft_address")
    p_key.add_argument("token_id")
    p_key.set_defaults(func=cmd_derive_anchor_key)

    p_set = sub.add_parser("set-anchor", help="Store {locator, hash} under the token's anchor key")
    p_set.add_argument("nft_address")
    p_set.add_argument("token_id")
    p_set.add_argument("locator", help="CID or CID/path of the envelope")
    p_set.add_argument("enc_hash", help="Envelope hash from hash-envelope")
    p_set.add_argument("--piece-cid", default="", help="Storage deal piece CID")
    p_set.add_argument("--deal-id", type=int, default=0, help="Storage deal id")
    p_set.set_defaults(func=cmd_set_anchor)

    p_get = sub.add_parser("get-anchor", help="Read the anchor record for a token")
    p_get.add_argument("nft_address")
    p_get.add_argument("token_id")
    p_get.set_defaults(func=cmd_get_anchor)

    p_open = sub.add_parser("open-anchor", help="Look up, fetch, verify and decrypt a token's envelope")
    p_open.add_argument("nft_address")
    p_open.add_argument("token_id")
    p_open.add_argument("key_b64", help="Envelope key, base64")
    p_open.set_defaults(func=cmd_open_anchor)

    p_gen = sub.add_parser("generate-keys", help="Generate a local test account")
    p_gen.add_argument("name")
    p_gen.set_defaults(func=cmd_generate_keys)

    p_sign = sub.add_parser("sign-approval", help="Sign an approval message with a local account")
    p_sign.add_argument("name")
    p_sign.add_argument("--message", help="Message to sign")
    p_sign.add_argument("--token-id", default="1", help="Token id for the default message")
    p_sign.set_defaults(func=cmd_sign_approval)

    return parser


def settings_from_args(args, base: Settings) -> Settings:
    overrides = {}
    if args.keys_dir:
        overrides["keys_dir"] = Path(args.keys_dir)
    if args.gateways:
        overrides["gateways"] = tuple(args.gateways)
    if args.registry_url:
        overrides["registry_url"] = args.registry_url
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    return dataclasses.replace(base, **overrides)


def main(argv=None, settings: Settings | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = settings_from_args(args, settings or Settings.from_env())
        logging.basicConfig(
            level=getattr(logging, settings.log_level, logging.WARNING),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        args.func(args, settings)
    except CreditAnchorError as exc:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(exc.exit_code)
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
