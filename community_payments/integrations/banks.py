"""Nigerian banks supported for payouts, keyed by CBN bank code."""
from typing import Dict, List, Optional

NIGERIAN_BANKS: Dict[str, str] = {
    "044": "Access Bank",
    "050": "Ecobank Nigeria",
    "070": "Fidelity Bank",
    "011": "First Bank of Nigeria",
    "214": "First City Monument Bank",
    "058": "Guaranty Trust Bank",
    "030": "Heritage Bank",
    "301": "Jaiz Bank",
    "082": "Keystone Bank",
    "526": "Parallex Bank",
    "076": "Polaris Bank",
    "101": "Providus Bank",
    "221": "Stanbic IBTC Bank",
    "068": "Standard Chartered Bank",
    "232": "Sterling Bank",
    "100": "Suntrust Bank",
    "032": "Union Bank of Nigeria",
    "033": "United Bank For Africa",
    "215": "Unity Bank",
    "035": "Wema Bank",
    "057": "Zenith Bank",
}


def bank_name_for(bank_code: str) -> Optional[str]:
    return NIGERIAN_BANKS.get(bank_code)


def supported_banks() -> List[Dict[str, str]]:
    """Banks sorted by name, as served to clients."""
    return [
        {"code": code, "name": name}
        for code, name in sorted(NIGERIAN_BANKS.items(), key=lambda item: item[1])
    ]
