import logging
from dataclasses import dataclass, field
from time import sleep
from typing import List

import collectors as C
from lazy import concat, empty, of, range_closed, range_of, source
from models import EngineSettings
from utils import compare_modes

settings = EngineSettings.from_env()
log = logging.getLogger("demo")


@dataclass(frozen=True)
class Employee:
    name: str
    id: int
    salary: int
    department: str
    job_title: str
    years_of_experience: int
    employment_type: str
    skills: List[str] = field(default_factory=list)


EMPLOYEES = [
    Employee("John Doe", 1001, 45000, "IT", "Software Engineer", 5, "Full-time", ["Java", "Python"]),
    Employee("Alice Smith", 1002, 55000, "HR", "HR Manager", 10, "Full-time", ["Communication", "Recruiting"]),
    Employee("Bob Johnson", 1003, 50000, "IT", "DevOps Engineer", 3, "Contract", ["DevOps", "Python"]),
    Employee("Mary Davis", 1004, 60000, "Finance", "Financial Analyst", 8, "Full-time", ["Accounting", "Management"]),
    Employee("David Brown", 1005, 75000, "Finance", "Finance Manager", 12, "Part-time", ["Management", "Leadership"]),
    Employee("Emily Clark", 1006, 48000, "IT", "Quality Analyst", 4, "Full-time", ["Testing", "Java"]),
    Employee("Michael Wilson", 1007, 52000, "IT", "System Administrator", 6, "Full-time", ["Linux", "Networking"]),
    Employee("Sarah Johnson", 1008, 60000, "HR", "Recruitment Specialist", 7, "Part-time", ["Interviewing", "Communication"]),
]

FRUITS = ["Apple", "Banana", "Orange", "Grapes", "Banana", "Mango", "Peach", "Orange"]


def expensive_transform(x):
    # Simulate a costly step so laziness is visible
    log.info(f"  computing f({x}) ...")
    sleep(0.05)
    return x * x


def laziness_demo():
    log.info("--- Laziness: no work until a terminal operation ---")
    pipeline = (
        range_of(1, 10_000, settings=settings)
        .map(expensive_transform)
        .filter(lambda v: v % 2 == 0)
        .skip(3)
        .limit(5)
    )
    log.info(f"Constructed {pipeline!r}; nothing computed yet")
    log.info(f"Result: {pipeline.to_list()}")


def advanced_collectors_demo():
    log.info("--- Collectors ---")
    log.info(f"Fruit List: {source(FRUITS, settings).to_list()}")
    log.info(f"Fruit Set: {source(FRUITS, settings).to_set()}")
    log.info(f"Fruit Map (name -> length): {source(FRUITS, settings).distinct().to_dict(lambda f: f, len)}")
    log.info(f"Joined Fruit String: {source(FRUITS, settings).joining(', ', '[', ']')}")
    log.info(f"Grouped by Length: {source(FRUITS, settings).group_by(len)}")
    log.info(f"Partitioned by Length > 5: {source(FRUITS, settings).partition_by(lambda f: len(f) > 5)}")


def combining_demo():
    log.info("--- Combining pipelines ---")
    combined = concat(["Apple", "Banana", "Orange"], ["Grapes", "Mango", "Peach"], settings=settings)
    log.info(f"Combined List: {combined.to_list()}")


def reduction_demo():
    log.info("--- Reductions ---")
    numbers = [1, 2, 3, 4, 5]
    log.info(f"Sum: {source(numbers, settings).reduce(lambda a, b: a + b, 0)}")
    log.info(f"Product: {source(numbers, settings).reduce(lambda a, b: a * b, 1)}")
    log.info(f"Max: {source(numbers, settings).reduce(lambda a, b: a if a > b else b)}")
    log.info(f"Count: {source(numbers, settings).count()}")
    log.info(f"Average: {source(numbers, settings).average()}")


def optional_result_demo():
    log.info("--- Absent results ---")
    log.info(f"First Name: {of('Alice', 'Bob', 'Charlie', settings=settings).find_first(default='No result found')}")
    log.info(f"First Name in Empty Pipeline: {empty(settings).find_first(default='No result found')}")
    log.info(f"Any Name: {of('Alice', 'Bob', 'Charlie', settings=settings).parallel().find_any()}")
    log.info(f"Minimum Value: {of(9, 5, 3, 7, 1, settings=settings).min()}")
    log.info(f"Minimum Value in Empty Pipeline: {empty(settings).min(default='No result found')}")
    log.info(f"Maximum Value: {of(9, 5, 3, 7, 1, settings=settings).max()}")


def short_circuit_demo():
    log.info("--- Short-circuiting ---")
    numbers = list(range(1, 11))
    log.info(f"First element: {source(numbers, settings).find_first()}")
    log.info(f"Any element: {source(numbers, settings).parallel().find_any()}")
    log.info(f"Any match > 5: {source(numbers, settings).any_match(lambda n: n > 5)}")
    log.info(f"All match > 0: {source(numbers, settings).all_match(lambda n: n > 0)}")
    log.info(f"None match < 0: {source(numbers, settings).none_match(lambda n: n < 0)}")


def order_preservation_demo():
    log.info("--- Order preservation ---")
    ordered = list(range(1, 11))
    preserved = source(ordered, settings).parallel().filter(lambda n: n % 2 == 0).map(lambda n: n * 2).to_list()
    log.info(f"Preserved Order Result: {preserved}")
    relaxed = source(ordered, settings).unordered().parallel().filter(lambda n: n % 2 == 0).map(lambda n: n * 2).to_list()
    log.info(f"Unordered Result: {relaxed}")


def parallelism_control_demo():
    log.info("--- Sequential vs parallel ---")
    dataset = list(range(1, 1_000_001))
    comparison = compare_modes(
        lambda: source(dataset, settings).filter(lambda n: n % 2 == 0).map(lambda n: n * 2),
        lambda p: p.count(),
        operation="count"
    )
    log.info(f"Sequential: {comparison.sequential.execution_time_ms:.1f} ms, "
             f"parallel: {comparison.parallel.execution_time_ms:.1f} ms, "
             f"results match: {comparison.results_match}")
    back = source(dataset, settings).parallel().filter(lambda n: n % 2 == 0).sequential()
    log.info(f"Mode after switching back: parallel={back.is_parallel()}, size={back.count()}")


def numeric_demo():
    log.info("--- Numeric statistics ---")
    log.info(f"Range sum: {range_of(1, 10, settings=settings).sum()}")
    log.info(f"Range average: {range_of(1, 10, settings=settings).average()}")
    log.info(f"Closed range stats: {range_closed(1, 99, settings=settings).summary_statistics()}")
    log.info(f"Float stats: {of(1.5, 2.5, 3.5, 4.5, 5.5, settings=settings).summary_statistics()}")


def pipeline_processing_demo():
    log.info("--- Intermediate operations ---")
    log.info(f"filter: {of('Alice', 'Bob', 'Charlie', 'Anna', settings=settings).filter(lambda n: n.startswith('A')).to_list()}")
    log.info(f"map: {of('Alice', 'Bob', 'Charlie', settings=settings).map(str.upper).to_list()}")
    log.info(f"flat_map: {source([['Alice', 'Bob'], ['Charlie', 'David']], settings).flat_map(lambda xs: xs).to_list()}")
    log.info(f"sorted: {of('Charlie', 'Bob', 'Alice', settings=settings).sorted().to_list()}")
    log.info(f"distinct: {of('Alice', 'Bob', 'Alice', 'Charlie', settings=settings).distinct().to_list()}")
    log.info(f"limit: {of('Alice', 'Bob', 'Charlie', 'David', settings=settings).limit(2).to_list()}")
    log.info(f"skip: {of('Alice', 'Bob', 'Charlie', 'David', settings=settings).skip(2).to_list()}")
    (of('Alice', 'Bob', 'Charlie', settings=settings)
        .peek(lambda n: log.info(f"Before: {n}"))
        .map(str.upper)
        .peek(lambda n: log.info(f"After: {n}"))
        .for_each_ordered(lambda n: log.info(n)))


def employee_demo():
    log.info("--- Employee map features ---")
    staff = lambda: source(EMPLOYEES, settings)
    log.info(f"Employment type count: {staff().group_by(lambda e: e.employment_type, C.counting())}")
    log.info(f"Employees by skill: {staff().flat_map(lambda e: [(s, e.name) for s in e.skills]).group_by(lambda p: p[0], C.mapping(lambda p: p[1], C.to_list()))}")
    log.info(f"Name -> salary: {staff().to_dict(lambda e: e.name, lambda e: e.salary)}")
    log.info(f"High earners by department: {staff().filter(lambda e: e.salary > 50000).group_by(lambda e: e.department, C.counting())}")
    log.info(f"Max salary by department: {staff().group_by(lambda e: e.department, C.mapping(lambda e: e.salary, C.max_by()))}")
    log.info(f"Average salary by department: {staff().group_by(lambda e: e.department, C.averaging(lambda e: e.salary))}")
    bonus = {"John Doe": 5000, "Alice Smith": 3000}
    combined = staff().to_dict(lambda e: e.name, lambda e: e.salary, merge=lambda a, b: a + b, factory=lambda: dict(bonus))
    log.info(f"Salaries with bonus: {combined}")
    log.info(f"Salary ranges: {staff().group_by(lambda e: 'Low' if e.salary < 50000 else 'Medium' if e.salary < 60000 else 'High', C.mapping(lambda e: e.name, C.to_list()))}")
    by_seniority = staff().parallel().sorted(comparator=lambda a, b: b.years_of_experience - a.years_of_experience).map(lambda e: e.name).to_list()
    log.info(f"Most experienced first: {by_seniority}")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    for demo in (
        laziness_demo,
        advanced_collectors_demo,
        combining_demo,
        reduction_demo,
        optional_result_demo,
        short_circuit_demo,
        order_preservation_demo,
        parallelism_control_demo,
        numeric_demo,
        pipeline_processing_demo,
        employee_demo,
    ):
        demo()
