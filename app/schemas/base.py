from pydantic import BaseModel


# спільна відповідь для всіх неуспішних операцій ledger / fraud
class OperationFailed(BaseModel):
	success: bool = False
	error: str
