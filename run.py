import sys, asyncio

if sys.platform.startswith("win"):
    # psycopg async exige o selector loop; precisa valer antes do uvicorn criar o loop
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
