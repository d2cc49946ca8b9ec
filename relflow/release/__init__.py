"""Release-version lifecycle bounded context.

Layers, leaves first:
- domain: version parsing, the bump/duplicate decision, candidate naming
- infra: GitHub registry, artifact store, opaque shell steps
- resolve: trigger and base-version resolution
- flow: the pipeline state machine
- view: report rendering
"""

from __future__ import annotations
