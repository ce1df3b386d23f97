# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que les routers ne soient chargés.

from app.models.test_record import TestRecord  # noqa: F401
