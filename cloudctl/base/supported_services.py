from typing import Literal


existing_batch_kinds = Literal[
    "dns",
    "certificates",
    "distributions",
    "invalidations",
]


existing_cloud_providers = Literal["cloudflare", "aws"]
