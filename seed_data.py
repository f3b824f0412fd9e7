from datetime import date, timedelta

from care_docs.database import Base, engine, SessionLocal
from care_docs.models import *
from care_docs.services.repository import ScheduleRepository
from care_docs.services.schedule_checker import ensure_client_schedules
from care_docs.services.monitoring_generator import generate_monitoring_schedules_from_goals
from care_docs.schemas import GoalPeriodInput

def create_seed_data():
    """시드 데이터 생성"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("시드 데이터 생성을 시작합니다...")

        # 기존 데이터 삭제 (중복 방지)
        print("기존 데이터를 정리합니다...")
        db.query(DocumentValidation).delete()
        db.query(MonitoringSchedule).delete()
        db.query(GoalPeriod).delete()
        db.query(DocumentSchedule).delete()
        db.query(BillingRecord).delete()
        db.query(Helper).delete()
        db.query(CareClient).delete()
        db.commit()

        today = date.today()

        # 이용자 생성
        print("이용자를 생성합니다...")
        clients = [
            CareClient(name="山田 花子", contract_start=today + timedelta(days=5), care_level="要介護2", services=["身体介護", "生活援助"]),
            CareClient(name="佐藤 一郎", contract_start=today - timedelta(days=200), care_level="要介護1", services=["生活援助"]),
            CareClient(name="鈴木 和子", contract_start=today - timedelta(days=30), care_level="", services=["身体介護"]),
        ]
        db.add_all(clients)
        db.commit()
        for client in clients:
            db.refresh(client)

        # 헬퍼 생성
        print("헬퍼를 생성합니다...")
        db.add_all([
            Helper(name="田中", hire_date=today - timedelta(days=400)),
            Helper(name="高橋", hire_date=today - timedelta(days=3)),
        ])

        # 당월 실적 생성 (고용일 이전 서비스 1건 포함)
        print("실적을 생성합니다...")
        first_day = today.replace(day=1)
        db.add_all([
            BillingRecord(care_client_id=clients[1].id, client_name=clients[1].name, helper_name="田中",
                          service_date=first_day, service_code="生活援助"),
            BillingRecord(care_client_id=clients[2].id, client_name=clients[2].name, helper_name="高橋",
                          service_date=first_day, service_code="身体介護"),
        ])
        db.commit()

        repository = ScheduleRepository(db)

        # 서류 스케줄 초기화
        print("서류 스케줄을 생성합니다...")
        client_schemas = repository.load_clients()
        ensure_client_schedules(repository, client_schemas)

        # 목표 기간 및 모니터링 일정
        print("목표 기간과 모니터링 일정을 생성합니다...")
        goals = repository.replace_goal_periods(clients[1].id, [
            GoalPeriodInput(goal_type="long_term", goal_text="자택에서 안전하게 생활한다",
                            start_date=today - timedelta(days=200), end_date=today + timedelta(days=165)),
            GoalPeriodInput(goal_type="short_term", goal_index=0, goal_text="주 3회 산책",
                            start_date=today - timedelta(days=80), end_date=today + timedelta(days=10)),
        ])
        new_items = generate_monitoring_schedules_from_goals(
            goals, repository.load_monitoring_schedules(clients[1].id), today
        )
        for item in new_items:
            repository.save_monitoring_schedule(item)

        print("시드 데이터 생성이 완료되었습니다!")
        print(f"이용자 {len(clients)}명, 목표 {len(goals)}건, 모니터링 일정 {len(new_items)}건")

    except Exception as e:
        print(f"시드 데이터 생성 중 오류 발생: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
