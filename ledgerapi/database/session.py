from ledgerapi.database.connection import Database

# 프로세스 전역 인스턴스. main.create_app 의 lifespan 에서 init/shutdown
database = Database()
