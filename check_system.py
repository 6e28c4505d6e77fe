"""
FeliCa Bridge System Checker
============================
Checks if the system is ready to run the FeliCa bridge.
Run this to diagnose issues on target machines.

    python check_system.py [--device usb|pcsc] [--poll]
"""

import argparse
import socket
import sys

from bridge import PORT, make_transport_factory
from felica import FeliCa, FeliCaError, SYSTEMCODE_ANY


def check_python():
    """Check Python version"""
    print(f"  Python: {sys.version}")
    if sys.version_info >= (3, 8):
        print("  ✓ Python version OK")
        return True
    else:
        print("  ✗ Python 3.8+ required")
        return False


def check_pyscard():
    """Check if pyscard is working"""
    print("\n[PC/SC Library]")
    try:
        from smartcard.System import readers
        print("  ✓ pyscard library loaded")

        r = readers()
        if r:
            print(f"  ✓ Found {len(r)} reader(s):")
            for reader in r:
                print(f"    - {reader}")
            return True
        else:
            print("  ✗ No card readers found")
            print("  → Check USB connection and driver installation")
            return False
    except ImportError:
        print("  ✗ pyscard not installed")
        print("  → pip install pyscard (only needed for --device pcsc)")
        return None
    except Exception as e:
        print(f"  ✗ pyscard error: {e}")
        return False


def check_nfcpy():
    """Check if nfcpy is available"""
    print("\n[nfcpy Library]")
    try:
        import nfc
        print(f"  ✓ nfcpy {getattr(nfc, '__version__', '')}")
        return True
    except ImportError:
        print("  ✗ nfcpy not installed")
        print("  → pip install nfcpy")
        return False


def check_websockets():
    """Check if websockets is available"""
    print("\n[WebSocket Library]")
    try:
        import websockets
        print(f"  ✓ websockets {websockets.__version__}")
        return True
    except ImportError:
        print("  ✗ websockets not installed")
        return False


def check_port(port: int = PORT):
    """Check if the bridge port is available"""
    print(f"\n[Port {port}]")
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        result = sock.connect_ex(('localhost', port))
        sock.close()

        if result == 0:
            print(f"  ⚠ Port {port} is in use (server may be running)")
        else:
            print(f"  ✓ Port {port} is available")
        return True
    except Exception as e:
        print(f"  ? Error checking port: {e}")
        return None


def check_polling(device: str):
    """Poll a card through the configured device"""
    print(f"\n[Polling on {device}]")
    try:
        with make_transport_factory(device)() as transport:
            idm, pmm = FeliCa(transport).polling(SYSTEMCODE_ANY)
        print(f"  ✓ IDm: {idm.hex()}")
        print(f"  ✓ PMm: {pmm.hex()}")
        return True
    except FeliCaError as e:
        print(f"  ✗ {type(e).__name__}: {e}")
        print("  → Place a FeliCa card on the reader")
        return False


def main(argv=None):
    parser = argparse.ArgumentParser(description="Check FeliCa bridge prerequisites")
    parser.add_argument("--device", default="usb", help="device to poll (default: %(default)s)")
    parser.add_argument("--poll", action="store_true", help="also poll a card on the device")
    args = parser.parse_args(argv)

    print("=" * 60)
    print("  FeliCa Bridge System Checker")
    print("=" * 60)

    results = {}

    print("\n[Python Environment]")
    results['python'] = check_python()
    results['nfcpy'] = check_nfcpy()
    results['pyscard'] = check_pyscard()
    results['websockets'] = check_websockets()
    results['port'] = check_port()
    if args.poll:
        results['polling'] = check_polling(args.device)

    print("\n" + "=" * 60)
    print("  SUMMARY")
    print("=" * 60)

    all_ok = True
    critical_ok = True
    critical = ['python', 'websockets', 'pyscard' if args.device.startswith('pcsc') else 'nfcpy']

    for name, status in results.items():
        if status is True:
            icon = "✓"
        elif status is False:
            icon = "✗"
            all_ok = False
            if name in critical:
                critical_ok = False
        else:
            icon = "?"
            all_ok = False

        print(f"  {icon} {name}")

    print("\n" + "-" * 60)

    if all_ok:
        print("  ✓ System is ready for FeliCa Bridge!")
    elif critical_ok:
        print("  ⚠ System has minor issues but may work")
    else:
        print("  ✗ System is NOT ready - fix critical issues above")

    print("=" * 60)
    return 0 if critical_ok else 1


if __name__ == "__main__":
    sys.exit(main())
