import uuid
import hashlib
import platform
import psutil

def get_hardware_fingerprint() -> str:
    """
    Generate the short serial key identifying this machine.

    The key is what gets listed in the remote entitlement table, so it is
    kept to six uppercase hex characters picked from an MD5 digest of the
    machine's identifiers.
    """
    # Get MAC address (most stable identifier)
    mac = ':'.join(['{:02x}'.format((uuid.getnode() >> elements) & 0xff)
                    for elements in range(0, 8*6, 8)][::-1])

    cpu_count = str(psutil.cpu_count(logical=True))
    system = platform.system()
    machine = platform.machine()

    fingerprint_data = f"{mac}|{cpu_count}|{system}|{machine}"
    digest = hashlib.md5(fingerprint_data.encode()).hexdigest().upper()

    return digest[8:11] + digest[2:3] + digest[12:14]
