"""
ChainProof command line.

Usage:
    chainproof digest     (--text STR | --file PATH) [--salt N] [--algorithm NAME]
    chainproof rsa        --modulus N --exponent E --signature S
    chainproof merge-demo [--text STR]
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .commitment import HashCore
from .errors import ChainProofError
from .field import to_field
from .params import ProofParams
from .protocol.exponentiation import SplitExponentiation
from .protocol.merge import MergeTree, calculate_root_identity_digest
from .protocol.stepchain import StepChain
from .sha2 import VARIANTS


logger = logging.getLogger('chainproof')


def _int(text: str) -> int:
    return int(text, 0)


def _read_input(args: argparse.Namespace) -> bytes:
    if args.file is not None:
        return args.file.read_bytes()
    return args.text.encode('utf-8')


def _params(args: argparse.Namespace, **overrides) -> ProofParams:
    return ProofParams(hash_core=HashCore(args.hash_core), **overrides)


def cmd_digest(args: argparse.Namespace) -> int:
    data = _read_input(args)
    chain = StepChain(_params(
        args,
        digest_algorithm=args.algorithm,
        blocks_per_step=args.blocks_per_step,
    ))
    chain.compile()

    salt = to_field(args.salt)
    proofs = chain.run_chain(salt, data)
    result = proofs[-1].public_output
    expected = chain.expected_digest_commitment(salt, data)

    print(f"Algorithm:  {args.algorithm}")
    print(f"Input:      {len(data)} bytes")
    print(f"Steps:      {len(proofs)}")
    print(f"Commitment: {result.to_int():#066x}")
    print(f"Verified:   {chain.verify_chain(proofs, salt, data)}")
    return 0 if result == expected else 1


def cmd_rsa(args: argparse.Namespace) -> int:
    exp = SplitExponentiation(_params(
        args,
        exponent_bits=args.exponent_bits,
        phase_bits=args.phase_bits,
        modulus_bits=args.modulus_bits,
    ))
    exp.compile()

    proofs = exp.run_phases(args.modulus, args.exponent, args.signature)
    acc = proofs[-1].public_output.accumulator

    print(f"Phases:     {len(proofs)}")
    print(f"Result:     {acc:#x}")
    print(f"Verified:   {exp.verify_phases(proofs)}")
    return 0 if acc == pow(args.signature, args.exponent, args.modulus) else 1


def cmd_merge_demo(args: argparse.Namespace) -> int:
    params = _params(args)
    data = args.text.encode('utf-8')

    chain = StepChain(params)
    vk = chain.compile()
    salt = to_field(args.salt)
    proofs = chain.run_chain(salt, data)

    tree = MergeTree(params)
    tree.compile()
    vks = [vk] * len(proofs)
    root = tree.generate_root_proof(proofs, vks)
    node = root.public_output

    print(f"Leaves:     {len(proofs)}")
    print(f"Left:       {node.left.to_int():#066x}")
    print(f"Right:      {node.right.to_int():#066x}")
    print(f"Identity:   {node.identity_digest.to_int():#066x}")
    ok = (
        tree.verify(root)
        and node.right == chain.expected_digest_commitment(salt, data)
        and node.identity_digest == calculate_root_identity_digest(vks, params.hasher)
    )
    print(f"Verified:   {ok}")
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='chainproof',
        description='ChainProof: composable proofs over long computations',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    chainproof digest --text "hello world"
    chainproof digest --file message.bin --algorithm sha2_512
    chainproof rsa --modulus 3233 --exponent 17 --signature 65
    chainproof merge-demo
        """
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Log every proof (DEBUG level)'
    )
    parser.add_argument(
        '--hash-core',
        choices=[c.value for c in HashCore],
        default=HashCore.SHAKE256.value,
        help='Commitment hash core (default: shake256)'
    )

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('digest', help='Prove a SHA-2 digest step by step')
    source = p.add_mutually_exclusive_group(required=True)
    source.add_argument('--text', help='Input string (UTF-8)')
    source.add_argument('--file', type=Path, help='Input file')
    p.add_argument('--salt', type=_int, default=0, help='Commitment salt (default: 0)')
    p.add_argument(
        '--algorithm',
        choices=sorted(VARIANTS),
        default='sha2_256',
        help='Digest algorithm (default: sha2_256)'
    )
    p.add_argument('--blocks-per-step', type=int, default=1, help='Blocks absorbed per step')
    p.set_defaults(func=cmd_digest)

    p = sub.add_parser('rsa', help='Prove signature^exponent mod modulus in phases')
    p.add_argument('--modulus', type=_int, required=True)
    p.add_argument('--exponent', type=_int, required=True)
    p.add_argument('--signature', type=_int, required=True)
    p.add_argument('--exponent-bits', type=int, default=20)
    p.add_argument('--phase-bits', type=int, default=10)
    p.add_argument('--modulus-bits', type=int, default=4096)
    p.set_defaults(func=cmd_rsa)

    p = sub.add_parser('merge-demo', help='Fold a digest chain into one merge root')
    p.add_argument(
        '--text',
        default='The quick brown fox jumps over the lazy dog. ' * 5,
        help='Input string; its block count is the leaf count'
    )
    p.add_argument('--salt', type=_int, default=0)
    p.set_defaults(func=cmd_merge_demo)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        return args.func(args)
    except ChainProofError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 2
    except ValueError as e:
        parser.error(str(e))


if __name__ == '__main__':
    sys.exit(main())
